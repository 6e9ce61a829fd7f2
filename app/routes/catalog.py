from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.db import get_db
from app.deps.organization import get_active_organization
from app.models.coupon import Coupon
from app.models.product import Product
from app.schemas.catalog import CouponOut, CouponUpsert, ProductOut, ProductUpsert


router = APIRouter(prefix="/api", tags=["catalog"])


@router.get("/coupons")
def list_coupons(
    page: int = Query(default=1, ge=1),
    pageSize: int = Query(default=50, ge=1, le=500),
    organization_id: str = Depends(get_active_organization),
    db: Session = Depends(get_db),
):
    q = db.query(Coupon).filter(Coupon.organization_id == organization_id)
    total = q.count()
    rows = q.order_by(Coupon.name.asc(), Coupon.id.asc()).offset((page - 1) * pageSize).limit(pageSize).all()
    return {
        "coupons": [CouponOut.model_validate(c).model_dump(mode="json") for c in rows],
        "page": page,
        "pageSize": pageSize,
        "total": total,
    }


@router.get("/coupons/{coupon_id}", response_model=CouponOut)
def get_coupon(
    coupon_id: str,
    organization_id: str = Depends(get_active_organization),
    db: Session = Depends(get_db),
):
    coupon = (
        db.query(Coupon)
        .filter(Coupon.id == coupon_id, Coupon.organization_id == organization_id)
        .first()
    )
    if not coupon:
        raise HTTPException(status_code=404, detail="Coupon not found")
    return coupon


@router.put("/coupons/{coupon_id}", response_model=CouponOut)
def upsert_coupon(
    coupon_id: str,
    payload: CouponUpsert,
    organization_id: str = Depends(get_active_organization),
    db: Session = Depends(get_db),
):
    coupon = db.query(Coupon).filter(Coupon.id == coupon_id).first()
    if coupon and coupon.organization_id != organization_id:
        raise HTTPException(status_code=409, detail="Coupon id belongs to another organization")
    if not coupon:
        coupon = Coupon(id=coupon_id, organization_id=organization_id)
        db.add(coupon)

    coupon.name = payload.name
    coupon.code = payload.code
    coupon.countries = payload.countries

    db.commit()
    db.refresh(coupon)
    return coupon


@router.get("/products", response_model=list[ProductOut])
def list_products(
    organization_id: str = Depends(get_active_organization),
    db: Session = Depends(get_db),
):
    return (
        db.query(Product)
        .filter(Product.organization_id == organization_id)
        .order_by(Product.title.asc())
        .all()
    )


@router.put("/products/{product_id}", response_model=ProductOut)
def upsert_product(
    product_id: str,
    payload: ProductUpsert,
    organization_id: str = Depends(get_active_organization),
    db: Session = Depends(get_db),
):
    product = db.query(Product).filter(Product.id == product_id).first()
    if product and product.organization_id != organization_id:
        raise HTTPException(status_code=409, detail="Product id belongs to another organization")
    if not product:
        product = Product(id=product_id, organization_id=organization_id)
        db.add(product)

    product.title = payload.title

    db.commit()
    db.refresh(product)
    return product
