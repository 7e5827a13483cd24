# Overview: JSON envelope and query-string helpers shared by the API routes.

from __future__ import annotations

from flask import jsonify, request

from .validation import ValidationError, coerce_date, coerce_int

MAX_PAGE_SIZE = 100


def ok(data=None, *, status: int = 200, message: str | None = None, **extra):
    body = {"success": True}
    if data is not None:
        body["data"] = data
    if message is not None:
        body["message"] = message
    body.update(extra)
    return jsonify(body), status


def fail(message: str, status: int = 400, **extra):
    body = {"success": False, "message": message}
    body.update(extra)
    return jsonify(body), status


def pagination_args(default_limit: int = 10) -> tuple[int, int]:
    """?page=&limit= with page >= 1 and 1 <= limit <= MAX_PAGE_SIZE."""
    page = request.args.get("page")
    limit = request.args.get("limit")
    page = coerce_int(page, "page") if page not in (None, "") else 1
    limit = coerce_int(limit, "limit") if limit not in (None, "") else default_limit
    if page < 1:
        raise ValidationError("page must be >= 1")
    if limit < 1:
        raise ValidationError("limit must be >= 1")
    return page, min(limit, MAX_PAGE_SIZE)


def date_arg(name: str):
    return coerce_date(request.args.get(name) or None, name)
