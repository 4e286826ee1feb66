from flask import g, request, url_for
from sqlalchemy import asc, desc, func

from . import bp
from ..errors import NotFound
from ..extensions import db
from ..model import Price, Product
from ..services.pricing import delete_prices, set_prices
from ..utils.api import ok, paged
from ..utils.decorators import _current_user, admin_required, is_admin
from ..utils.validation import (clean_bilingual, clean_str, json_body, pagination_args,
                                parse_bool, parse_int)


# ---------- helpers ----------
def _ep(name: str) -> str:
    return f"{bp.name}.{name}"


def _sort_products(query, sort):
    sort = (sort or "").strip()
    mapping = {
        "id": asc(Product.id), "-id": desc(Product.id),
        "stock": asc(Product.stock), "-stock": desc(Product.stock),
        "created": asc(Product.created_at), "-created": desc(Product.created_at),
    }
    col = mapping.get(sort, desc(Product.id))  # default newest first (id desc)
    return query.order_by(col)


def _get_product(pid, allow_inactive=False) -> Product:
    p = db.session.get(Product, pid)
    if not p or (not p.is_active and not allow_inactive):
        raise NotFound("Product not found")
    return p


def _apply(product: Product, data: dict, creating: bool):
    if creating or "name" in data:
        product.name = clean_bilingual(data.get("name"), "name", required=True)
    if "description" in data:
        product.description = clean_bilingual(data.get("description"), "description")
    if "imageUrl" in data:
        product.image_url = clean_str(data.get("imageUrl"), "imageUrl", max_len=500)
    if "stock" in data:
        product.stock = parse_int(data.get("stock"), "stock", minimum=0, default=0)
    if "isActive" in data:
        product.is_active = parse_bool(data.get("isActive"), default=True)


# ---------- routes ----------
# GET /api/products
@bp.get("")
def list_products():
    """
    Query params:
      q         -> substring match on the english or arabic name
      in_stock  -> bool (True = stock > 0)
      sort      -> id, -id, stock, -stock, created, -created
      page, pageSize
    """
    page, page_size = pagination_args()
    query = Product.query
    show_all = is_admin(_current_user(optional=True)) and parse_bool(request.args.get("all"), False)
    if not show_all:
        query = query.filter(Product.is_active.is_(True))

    q = (request.args.get("q") or "").strip()
    if q:
        # JSON column, match on its text form
        query = query.filter(func.lower(db.cast(Product.name, db.String)).contains(q.lower()))

    in_stock = parse_bool(request.args.get("in_stock"))
    if in_stock is True:
        query = query.filter(Product.stock > 0)
    elif in_stock is False:
        query = query.filter(Product.stock <= 0)

    query = _sort_products(query, request.args.get("sort"))
    currency = g.currency
    return ok("Products fetched", paged(query, page, page_size, lambda p: p.as_api(currency)))


# GET /api/products/<id>
@bp.get("/<int:pid>")
def get_product(pid):
    return ok("Product fetched", _get_product(pid).as_api(g.currency))


# POST /api/products
@bp.post("")
@admin_required
def create_product():
    data = json_body()
    product = Product(stock=0, is_active=True)
    _apply(product, data, creating=True)
    db.session.add(product)
    db.session.flush()
    if data.get("prices") is not None:
        set_prices(Price.PRODUCT, product.id, data["prices"])
    db.session.commit()
    db.session.refresh(product)

    resp = ok("Product created", product.as_api(g.currency), status=201)
    resp.headers["Location"] = url_for(_ep("get_product"), pid=product.id, _external=True)
    return resp


# PATCH /api/products/<id>
@bp.patch("/<int:pid>")
@admin_required
def update_product(pid):
    product = _get_product(pid, allow_inactive=True)
    data = json_body()
    _apply(product, data, creating=False)
    if data.get("prices") is not None:
        set_prices(Price.PRODUCT, product.id, data["prices"])
    db.session.commit()
    db.session.refresh(product)
    return ok("Product updated", product.as_api(g.currency))


# DELETE /api/products/<id>
@bp.delete("/<int:pid>")
@admin_required
def delete_product(pid):
    product = _get_product(pid, allow_inactive=True)
    delete_prices(Price.PRODUCT, product.id)
    db.session.delete(product)
    db.session.commit()
    return ok("Product deleted")
