# universo/app.py
from wsgiref.simple_server import make_server
from urllib.parse import parse_qs
import json
import logging
import re
import sys
import time
import uuid

from sqlalchemy import text

from universo.config import configure_logging
from universo.database.database import SessionLocal, settings as default_settings
from universo.repositories.sqlalchemy import (
    SqlalchemyUserRepository,
    SqlalchemyRoleRepository,
    SqlalchemyClusterRepository,
    SqlalchemyDomainRepository,
    SqlalchemyResourceRepository,
)
from universo.services.identity_service import IdentityService
from universo.services.cluster_service import ClusterService
from universo.services.domain_service import DomainService
from universo.services.resource_service import ResourceService
from universo.services.exceptions import *
from universo.utils.jsonapi import single_document, collection_document, list_document, error_document
from universo.utils.pagination import parse_page_request
from universo.utils.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

JSONAPI_CONTENT_TYPE = "application/vnd.api+json"
MAX_ID = 2 ** 63 - 1

# 인증 헤더를 보지 않는 경로. 요청 한도는 항상 클라이언트 주소 기준입니다.
PUBLIC_ROUTES = {
    ("POST", "/api/v1/auth/tokens"),
    ("POST", "/api/v1/users"),
}

# --------------------------------------------------------------------------
## 요청 처리 유틸리티 함수
# --------------------------------------------------------------------------

class MethodNotAllowedError(Exception):
    def __init__(self, message: str, allowed=()):
        super().__init__(message)
        self.allowed = list(allowed)


def get_request_data(environ):
    try:
        content_length = int(environ.get("CONTENT_LENGTH") or 0)
        data = json.loads(environ["wsgi.input"].read(content_length)) if content_length > 0 else {}
    except (ValueError, json.JSONDecodeError):
        raise ValueError("Invalid or missing JSON body.")
    if not isinstance(data, dict):
        raise ValueError("JSON body must be an object.")
    return data


def get_attributes(environ):
    """JSON:API 형식({"data": {"attributes": {...}}})과 단순 객체 형식을 모두 받습니다."""
    data = get_request_data(environ)
    if isinstance(data.get("data"), dict):
        data = data["data"].get("attributes", {})
        if not isinstance(data, dict):
            raise ValueError("'data.attributes' must be an object.")
    return data


def get_query(environ):
    parsed = parse_qs(environ.get("QUERY_STRING", ""), keep_blank_values=True)
    return {key: values[0] for key, values in parsed.items()}


def get_page_request(environ):
    query = get_query(environ)
    settings = environ['settings']
    return parse_page_request(
        query.get("page"), query.get("per_page"),
        default_per_page=settings.default_per_page, max_per_page=settings.max_per_page
    )


def get_bearer_token(environ):
    header = environ.get("HTTP_AUTHORIZATION", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def authorize_and_get_context(environ):
    token = get_bearer_token(environ)
    if not token:
        raise TokenInvalidError("Missing or malformed 'Authorization: Bearer' header.")
    return environ['services']['identity'].validate_token(token)


def path_id(raw, not_found, label):
    value = int(raw)
    if value > MAX_ID:
        raise not_found(f"{label} with id '{raw}' not found.")
    return value


def rate_limit_key(environ, method, path):
    """
    요청 한도를 셀 키를 정합니다.
    유효한 토큰이면 사용자 단위로, 그 외(공개 경로, 토큰 없음, 잘못된 토큰)는 클라이언트 주소 단위로 셉니다.
    """
    address_key = f"addr:{environ.get('REMOTE_ADDR') or 'unknown'}"
    token = get_bearer_token(environ)
    if not token or (method, path) in PUBLIC_ROUTES:
        return address_key
    try:
        ctx = environ['services']['identity'].validate_token(token)
    except TokenInvalidError:
        return address_key
    return f"user:{ctx.user_id}"


def handle_exception(e):
    error_map = {
        TokenInvalidError: "401 Unauthorized",
        AuthenticationError: "401 Unauthorized",
        PermissionDeniedError: "403 Forbidden",
        UserNotFoundError: "404 Not Found",
        RoleNotFoundError: "404 Not Found",
        ClusterNotFoundError: "404 Not Found",
        DomainNotFoundError: "404 Not Found",
        ResourceNotFoundError: "404 Not Found",
        MemberNotFoundError: "404 Not Found",
        MethodNotAllowedError: "405 Method Not Allowed",
        ValueError: "400 Bad Request",
        ValidationError: "422 Unprocessable Entity",
        UserCreationError: "422 Unprocessable Entity",
        ClusterCreationError: "422 Unprocessable Entity",
        ClusterNotEmptyError: "422 Unprocessable Entity",
        DomainNotEmptyError: "422 Unprocessable Entity",
        LastOwnerError: "422 Unprocessable Entity",
        LastLinkError: "422 Unprocessable Entity",
        RateLimitExceededError: "429 Too Many Requests",
    }
    status = error_map.get(type(e))
    if status is None:
        logger.exception("Unhandled error while processing request")
        status = "500 Internal Server Error"
        return status, json.dumps(error_document(status, "Internal server error."))
    return status, json.dumps(error_document(status, str(e)))

# --------------------------------------------------------------------------
## WSGI 애플리케이션 (의존성 주입 및 라우팅)
# --------------------------------------------------------------------------

def build_services(db_session, settings):
    # 1. 의존성 생성 (Repositories -> Services)
    user_repo = SqlalchemyUserRepository(db_session)
    role_repo = SqlalchemyRoleRepository(db_session)
    cluster_repo = SqlalchemyClusterRepository(db_session)
    domain_repo = SqlalchemyDomainRepository(db_session)
    resource_repo = SqlalchemyResourceRepository(db_session)

    identity_service = IdentityService(user_repo, cluster_repo, token_ttl_seconds=settings.token_ttl_seconds)
    cluster_service = ClusterService(cluster_repo, user_repo, role_repo)
    domain_service = DomainService(domain_repo, cluster_service)
    resource_service = ResourceService(resource_repo, domain_service)

    return {
        'identity': identity_service,
        'cluster': cluster_service,
        'domain': domain_service,
        'resource': resource_service,
    }


def resolve_route(method, path):
    allowed = []
    for route_method, pattern, route_handler in ROUTES:
        match = re.match(pattern, path)
        if not match:
            continue
        if method == route_method:
            return route_handler, match.groups()
        allowed.append(route_method)
    if allowed:
        raise MethodNotAllowedError(f"Method '{method}' is not allowed for '{path}'.", allowed)
    return None, ()


def make_application(session_factory=SessionLocal, settings=default_settings, rate_limiter=None):
    """
    WSGI 애플리케이션을 생성합니다.

    요청마다 새 DB 세션과 리포지토리/서비스 객체를 만들고, 요청이 끝나면 세션을 닫습니다.
    /api/ 경로는 요청 한도 검사를 거치며, 모든 /api/ 응답에 X-RateLimit-* 헤더가 붙습니다.
    """
    limiter = rate_limiter or RateLimiter(settings.rate_limit_requests, settings.rate_limit_window_seconds)

    def application(environ, start_response):
        started = time.monotonic()
        path = environ.get("PATH_INFO", "")
        method = environ.get("REQUEST_METHOD", "")
        request_id = uuid.uuid4().hex
        extra_headers = []

        db_session = session_factory()
        try:
            # 2. 생성된 서비스 객체들을 environ을 통해 핸들러에 전달
            environ['services'] = build_services(db_session, settings)
            environ['settings'] = settings
            environ['db_session'] = db_session

            if path.startswith("/api/"):
                limit_status = limiter.hit(rate_limit_key(environ, method, path))
                extra_headers += [
                    ("X-RateLimit-Limit", str(limit_status.limit)),
                    ("X-RateLimit-Remaining", str(limit_status.remaining)),
                    ("X-RateLimit-Reset", str(limit_status.reset_at)),
                ]
                if not limit_status.allowed:
                    extra_headers.append(("Retry-After", str(limit_status.retry_after)))
                    raise RateLimitExceededError("Rate limit exceeded. Try again later.", limit_status.retry_after)

            # 3. 라우팅 및 핸들러 실행
            handler, path_args = resolve_route(method, path)
            if handler:
                status, response_body = handler(environ, *path_args)
            else:
                status, response_body = '404 Not Found', json.dumps(error_document('404 Not Found', 'Not Found'))

        except Exception as e:
            db_session.rollback()
            status, response_body = handle_exception(e)
            if isinstance(e, MethodNotAllowedError):
                extra_headers.append(("Allow", ", ".join(e.allowed)))
        finally:
            db_session.close()

        headers = [("Content-Type", JSONAPI_CONTENT_TYPE), ("X-Request-Id", request_id)] + extra_headers
        start_response(status, headers)
        logger.info(
            "%s %s -> %s (%.1f ms) request_id=%s",
            method, path, status.split(" ", 1)[0], (time.monotonic() - started) * 1000, request_id
        )
        return [response_body.encode("utf-8")]

    return application

# --------------------------------------------------------------------------
## 핸들러 함수
# --------------------------------------------------------------------------

def health_handler(environ, *args):
    environ['db_session'].execute(text("SELECT 1"))
    return '200 OK', json.dumps({"status": "ok"})

# --- Auth / Users ---

def auth_tokens_handler(environ, *args):
    data = get_attributes(environ)
    token = environ['services']['identity'].authenticate(data.get('username'), data.get('password'))
    return '201 Created', json.dumps(single_document("tokens", {"id": token["token"], **token}))

def revoke_token_handler(environ, *args):
    ctx = authorize_and_get_context(environ)
    environ['services']['identity'].revoke_token(ctx.token)
    return '204 No Content', ''

def create_user_handler(environ, *args):
    data = get_attributes(environ)
    user = environ['services']['identity'].create_user(data.get('username'), data.get('password'))
    return '201 Created', json.dumps(single_document("users", user))

def get_me_handler(environ, *args):
    ctx = authorize_and_get_context(environ)
    user = environ['services']['identity'].get_user(ctx.user_id)
    return '200 OK', json.dumps(single_document("users", user))

def delete_me_handler(environ, *args):
    ctx = authorize_and_get_context(environ)
    environ['services']['identity'].delete_user(ctx)
    return '204 No Content', ''

# --- Clusters ---

def list_clusters_handler(environ, *args):
    ctx = authorize_and_get_context(environ)
    page = environ['services']['cluster'].list_clusters(ctx, get_page_request(environ))
    return '200 OK', json.dumps(collection_document("clusters", page, environ["PATH_INFO"], get_query(environ)))

def create_cluster_handler(environ, *args):
    ctx = authorize_and_get_context(environ)
    data = get_attributes(environ)
    cluster = environ['services']['cluster'].create_cluster(ctx, data.get('name'), data.get('description'))
    return '201 Created', json.dumps(single_document("clusters", cluster))

def get_cluster_handler(environ, cluster_id):
    ctx = authorize_and_get_context(environ)
    cluster = environ['services']['cluster'].get_cluster(ctx, path_id(cluster_id, ClusterNotFoundError, "Cluster"))
    return '200 OK', json.dumps(single_document("clusters", cluster))

def update_cluster_handler(environ, cluster_id):
    ctx = authorize_and_get_context(environ)
    data = get_attributes(environ)
    cluster = environ['services']['cluster'].update_cluster(ctx, path_id(cluster_id, ClusterNotFoundError, "Cluster"), data)
    return '200 OK', json.dumps(single_document("clusters", cluster))

def delete_cluster_handler(environ, cluster_id):
    ctx = authorize_and_get_context(environ)
    environ['services']['cluster'].delete_cluster(ctx, path_id(cluster_id, ClusterNotFoundError, "Cluster"))
    return '204 No Content', ''

def list_members_handler(environ, cluster_id):
    ctx = authorize_and_get_context(environ)
    members = environ['services']['cluster'].list_members(ctx, path_id(cluster_id, ClusterNotFoundError, "Cluster"))
    return '200 OK', json.dumps(list_document("members", members))

def set_member_role_handler(environ, cluster_id, user_id):
    ctx = authorize_and_get_context(environ)
    data = get_attributes(environ)
    member = environ['services']['cluster'].set_member_role(ctx, path_id(cluster_id, ClusterNotFoundError, "Cluster"), path_id(user_id, UserNotFoundError, "User"), data.get('role'))
    return '200 OK', json.dumps(single_document("members", member))

def remove_member_handler(environ, cluster_id, user_id):
    ctx = authorize_and_get_context(environ)
    environ['services']['cluster'].remove_member(ctx, path_id(cluster_id, ClusterNotFoundError, "Cluster"), path_id(user_id, UserNotFoundError, "User"))
    return '204 No Content', ''

# --- Domains ---

def list_cluster_domains_handler(environ, cluster_id):
    ctx = authorize_and_get_context(environ)
    page = environ['services']['domain'].list_cluster_domains(ctx, path_id(cluster_id, ClusterNotFoundError, "Cluster"), get_page_request(environ))
    return '200 OK', json.dumps(collection_document("domains", page, environ["PATH_INFO"], get_query(environ)))

def create_domain_handler(environ, cluster_id):
    ctx = authorize_and_get_context(environ)
    data = get_attributes(environ)
    domain = environ['services']['domain'].create_domain(ctx, path_id(cluster_id, ClusterNotFoundError, "Cluster"), data.get('name'), data.get('description'))
    return '201 Created', json.dumps(single_document("domains", domain))

def link_domain_handler(environ, cluster_id, domain_id):
    ctx = authorize_and_get_context(environ)
    domain = environ['services']['domain'].link_domain(ctx, path_id(cluster_id, ClusterNotFoundError, "Cluster"), path_id(domain_id, DomainNotFoundError, "Domain"))
    return '200 OK', json.dumps(single_document("domains", domain))

def unlink_domain_handler(environ, cluster_id, domain_id):
    ctx = authorize_and_get_context(environ)
    environ['services']['domain'].unlink_domain(ctx, path_id(cluster_id, ClusterNotFoundError, "Cluster"), path_id(domain_id, DomainNotFoundError, "Domain"))
    return '204 No Content', ''

def list_domains_handler(environ, *args):
    ctx = authorize_and_get_context(environ)
    page = environ['services']['domain'].list_domains(ctx, get_page_request(environ))
    return '200 OK', json.dumps(collection_document("domains", page, environ["PATH_INFO"], get_query(environ)))

def get_domain_handler(environ, domain_id):
    ctx = authorize_and_get_context(environ)
    domain = environ['services']['domain'].get_domain(ctx, path_id(domain_id, DomainNotFoundError, "Domain"))
    return '200 OK', json.dumps(single_document("domains", domain))

def update_domain_handler(environ, domain_id):
    ctx = authorize_and_get_context(environ)
    data = get_attributes(environ)
    domain = environ['services']['domain'].update_domain(ctx, path_id(domain_id, DomainNotFoundError, "Domain"), data)
    return '200 OK', json.dumps(single_document("domains", domain))

def delete_domain_handler(environ, domain_id):
    ctx = authorize_and_get_context(environ)
    environ['services']['domain'].delete_domain(ctx, path_id(domain_id, DomainNotFoundError, "Domain"))
    return '204 No Content', ''

# --- Resources ---

def list_domain_resources_handler(environ, domain_id):
    ctx = authorize_and_get_context(environ)
    query = get_query(environ)
    page = environ['services']['resource'].list_domain_resources(
        ctx, path_id(domain_id, DomainNotFoundError, "Domain"), get_page_request(environ), query.get('type') or None
    )
    return '200 OK', json.dumps(collection_document("resources", page, environ["PATH_INFO"], query))

def create_resource_handler(environ, domain_id):
    ctx = authorize_and_get_context(environ)
    data = get_attributes(environ)
    resource = environ['services']['resource'].create_resource(
        ctx, path_id(domain_id, DomainNotFoundError, "Domain"), data.get('name'), data.get('resource_type'), data.get('config')
    )
    return '201 Created', json.dumps(single_document("resources", resource))

def link_resource_handler(environ, domain_id, resource_id):
    ctx = authorize_and_get_context(environ)
    resource = environ['services']['resource'].link_resource(ctx, path_id(domain_id, DomainNotFoundError, "Domain"), path_id(resource_id, ResourceNotFoundError, "Resource"))
    return '200 OK', json.dumps(single_document("resources", resource))

def unlink_resource_handler(environ, domain_id, resource_id):
    ctx = authorize_and_get_context(environ)
    environ['services']['resource'].unlink_resource(ctx, path_id(domain_id, DomainNotFoundError, "Domain"), path_id(resource_id, ResourceNotFoundError, "Resource"))
    return '204 No Content', ''

def list_resources_handler(environ, *args):
    ctx = authorize_and_get_context(environ)
    query = get_query(environ)
    page = environ['services']['resource'].list_resources(ctx, get_page_request(environ), query.get('type') or None)
    return '200 OK', json.dumps(collection_document("resources", page, environ["PATH_INFO"], query))

def get_resource_handler(environ, resource_id):
    ctx = authorize_and_get_context(environ)
    resource = environ['services']['resource'].get_resource(ctx, path_id(resource_id, ResourceNotFoundError, "Resource"))
    return '200 OK', json.dumps(single_document("resources", resource))

def update_resource_handler(environ, resource_id):
    ctx = authorize_and_get_context(environ)
    data = get_attributes(environ)
    resource = environ['services']['resource'].update_resource(ctx, path_id(resource_id, ResourceNotFoundError, "Resource"), data)
    return '200 OK', json.dumps(single_document("resources", resource))

def delete_resource_handler(environ, resource_id):
    ctx = authorize_and_get_context(environ)
    environ['services']['resource'].delete_resource(ctx, path_id(resource_id, ResourceNotFoundError, "Resource"))
    return '204 No Content', ''


ROUTES = [
    ('GET', r'^/up$', health_handler),
    ('POST', r'^/api/v1/auth/tokens$', auth_tokens_handler),
    ('DELETE', r'^/api/v1/auth/tokens$', revoke_token_handler),
    ('POST', r'^/api/v1/users$', create_user_handler),
    ('GET', r'^/api/v1/users/me$', get_me_handler),
    ('DELETE', r'^/api/v1/users/me$', delete_me_handler),
    ('GET', r'^/api/v1/clusters$', list_clusters_handler),
    ('POST', r'^/api/v1/clusters$', create_cluster_handler),
    ('GET', r'^/api/v1/clusters/([0-9]+)$', get_cluster_handler),
    ('PATCH', r'^/api/v1/clusters/([0-9]+)$', update_cluster_handler),
    ('DELETE', r'^/api/v1/clusters/([0-9]+)$', delete_cluster_handler),
    ('GET', r'^/api/v1/clusters/([0-9]+)/members$', list_members_handler),
    ('PUT', r'^/api/v1/clusters/([0-9]+)/members/([0-9]+)$', set_member_role_handler),
    ('DELETE', r'^/api/v1/clusters/([0-9]+)/members/([0-9]+)$', remove_member_handler),
    ('GET', r'^/api/v1/clusters/([0-9]+)/domains$', list_cluster_domains_handler),
    ('POST', r'^/api/v1/clusters/([0-9]+)/domains$', create_domain_handler),
    ('PUT', r'^/api/v1/clusters/([0-9]+)/domains/([0-9]+)$', link_domain_handler),
    ('DELETE', r'^/api/v1/clusters/([0-9]+)/domains/([0-9]+)$', unlink_domain_handler),
    ('GET', r'^/api/v1/domains$', list_domains_handler),
    ('GET', r'^/api/v1/domains/([0-9]+)$', get_domain_handler),
    ('PATCH', r'^/api/v1/domains/([0-9]+)$', update_domain_handler),
    ('DELETE', r'^/api/v1/domains/([0-9]+)$', delete_domain_handler),
    ('GET', r'^/api/v1/domains/([0-9]+)/resources$', list_domain_resources_handler),
    ('POST', r'^/api/v1/domains/([0-9]+)/resources$', create_resource_handler),
    ('PUT', r'^/api/v1/domains/([0-9]+)/resources/([0-9]+)$', link_resource_handler),
    ('DELETE', r'^/api/v1/domains/([0-9]+)/resources/([0-9]+)$', unlink_resource_handler),
    ('GET', r'^/api/v1/resources$', list_resources_handler),
    ('GET', r'^/api/v1/resources/([0-9]+)$', get_resource_handler),
    ('PATCH', r'^/api/v1/resources/([0-9]+)$', update_resource_handler),
    ('DELETE', r'^/api/v1/resources/([0-9]+)$', delete_resource_handler),
]

application = make_application()

# --------------------------------------------------------------------------
## 서버 실행
# --------------------------------------------------------------------------

def main():
    configure_logging(default_settings.log_level)
    try:
        with make_server(default_settings.host, default_settings.port, application) as httpd:
            logger.info("Serving Universo Platformo on port %s...", default_settings.port)
            httpd.serve_forever()
    except Exception:
        logger.exception("Error starting server")
        sys.exit(1)


if __name__ == "__main__":
    main()
