# universo/utils/jsonapi.py
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

from universo.utils.pagination import Page


def resource_object(type_: str, item: Dict[str, Any]) -> Dict[str, Any]:
    """서비스가 반환한 딕셔너리를 JSON:API 리소스 객체로 변환합니다. 'id'는 문자열로 분리됩니다."""
    attributes = {k: v for k, v in item.items() if k != "id"}
    return {"id": str(item["id"]), "type": type_, "attributes": attributes}


def single_document(type_: str, item: Dict[str, Any]) -> Dict[str, Any]:
    return {"data": resource_object(type_, item)}


def _page_link(path: str, query: Dict[str, str], page: int, per_page: int) -> str:
    params = dict(query)
    params["page"] = str(page)
    params["per_page"] = str(per_page)
    return f"{path}?{urlencode(sorted(params.items()))}"


def collection_document(type_: str, page: Page, path: str, query: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    query = {k: v for k, v in (query or {}).items() if k not in ("page", "per_page")}
    links = {"self": _page_link(path, query, page.page, page.per_page)}
    if page.has_next:
        links["next"] = _page_link(path, query, page.page + 1, page.per_page)
    if page.has_prev:
        links["prev"] = _page_link(path, query, page.page - 1, page.per_page)
    return {
        "data": [resource_object(type_, item) for item in page.items],
        "meta": {
            "page": page.page,
            "per_page": page.per_page,
            "total": page.total,
            "total_pages": page.total_pages,
        },
        "links": links,
    }


def list_document(type_: str, items: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {"data": [resource_object(type_, item) for item in items], "meta": {"total": len(items)}}


def error_document(status: str, detail: str) -> Dict[str, Any]:
    code, _, title = status.partition(" ")
    return {"errors": [{"status": code, "title": title, "detail": detail}]}
