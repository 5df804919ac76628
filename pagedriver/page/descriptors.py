"""Request and response dicts handed to on_resource_requested / on_resource_received."""
from __future__ import annotations
import datetime
from typing import Any, Dict, List, Mapping, Optional


def headers_list(headers: Optional[Mapping[str, Any]]) -> List[Dict[str, str]]:
    if not headers:
        return []
    return [{"name": str(k), "value": str(v)} for k, v in dict(headers).items()]


def _now() -> datetime.datetime:
    return datetime.datetime.now()


def request_descriptor(resource_id: int, request) -> Dict[str, Any]:
    return {
        "id": resource_id,
        "method": request.method,
        "url": request.url,
        "time": _now(),
        "headers": headers_list(request.headers),
    }


def _header(headers: List[Dict[str, str]], name: str) -> Optional[str]:
    name = name.lower()
    for h in headers:
        if h["name"].lower() == name:
            return h["value"]
    return None


def response_descriptor(
    resource_id: int,
    response,
    stage: str,
    *,
    referrer: str = "",
    body: str = "",
    body_size: Optional[int] = None,
    redirect_url: Optional[str] = None,
) -> Dict[str, Any]:
    headers = headers_list(response.headers)
    if body_size is None:
        length = _header(headers, "content-length")
        body_size = int(length) if length and length.isdigit() else 0
    return {
        "id": resource_id,
        "url": response.url,
        "time": _now(),
        "headers": headers,
        "body_size": body_size,
        "content_type": response.mime_type or None,
        "redirect_url": redirect_url,
        "stage": stage,
        "status": response.status,
        "status_text": response.status_text,
        "referrer": referrer,
        "body": body,
    }


def failed_response_descriptor(resource_id: int, url: str) -> Dict[str, Any]:
    """Stand-in response for a content load that never produced one."""
    return {
        "id": resource_id,
        "url": url,
        "time": _now(),
        "headers": [],
        "body_size": 0,
        "content_type": None,
        "redirect_url": None,
        "stage": "end",
        "status": None,
        "status_text": None,
        "referrer": "",
        "body": "",
    }
