# --- gymmawy/utils/api.py ---
import math

from flask import jsonify


def api_ok(message, data=None):
    return {
        "status": True,
        "message": message,
        "data": data if data is not None else {},
    }


def ok(msg, data=None, status=200):
    r = jsonify(api_ok(msg, data)); r.status_code = status; return r


def page_payload(items, total, page, page_size):
    return {
        "items": items,
        "total": total,
        "page": page,
        "pageSize": page_size,
        "totalPages": math.ceil(total / page_size) if page_size else 0,
    }


def paged(query, page, page_size, serialize):
    p = query.paginate(page=page, per_page=page_size, error_out=False)
    return page_payload([serialize(x) for x in p.items], p.total, page, page_size)
