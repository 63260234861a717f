from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from circulerp.database import get_db
from circulerp.middleware.auth import get_current_user
from circulerp.models.product import Product
from circulerp.schemas.common import MessageResponse, PaginatedResponse, build_page
from circulerp.schemas.product import ProductCreate, ProductResponse, ProductUpdate
from circulerp.services.lookups import ensure_unique, get_or_404
from circulerp.services.notification_service import notify_admin

logger = structlog.get_logger()
router = APIRouter()


@router.get("", response_model=PaginatedResponse[ProductResponse])
async def list_products(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    q = select(Product)
    count_q = select(func.count(Product.id))
    if search:
        pattern = f"%{search}%"
        cond = or_(Product.name.ilike(pattern), Product.sku.ilike(pattern))
        q = q.where(cond)
        count_q = count_q.where(cond)
    if category:
        q = q.where(Product.category == category)
        count_q = count_q.where(Product.category == category)

    total = (await db.execute(count_q)).scalar() or 0
    result = await db.execute(q.order_by(Product.name).offset((page - 1) * limit).limit(limit))
    items = [ProductResponse.model_validate(p) for p in result.scalars().all()]
    return build_page(items, page, limit, total)


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(
    product_id: int,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    product = await get_or_404(db, Product, product_id, "Product not found")
    return ProductResponse.model_validate(product)


@router.post("", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
async def create_product(
    body: ProductCreate,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await ensure_unique(db, Product.sku, body.sku, "A product with this SKU already exists")

    product = Product(**body.model_dump())
    db.add(product)
    await db.flush()
    await db.refresh(product)

    logger.info("product_created", product_id=product.id, sku=product.sku)
    await notify_admin(
        db, background_tasks, "created", "Product", product.name, current_user["display_name"]
    )
    return ProductResponse.model_validate(product)


@router.put("/{product_id}", response_model=ProductResponse)
async def update_product(
    product_id: int,
    body: ProductUpdate,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    product = await get_or_404(db, Product, product_id, "Product not found")
    update_data = body.model_dump(exclude_unset=True, exclude_none=True)
    if "sku" in update_data:
        await ensure_unique(
            db,
            Product.sku,
            update_data["sku"],
            "A product with this SKU already exists",
            exclude_id=product_id,
        )

    for field, value in update_data.items():
        setattr(product, field, value)
    await db.flush()
    await db.refresh(product)

    logger.info("product_updated", product_id=product_id, fields=sorted(update_data))
    await notify_admin(
        db, background_tasks, "updated", "Product", product.name, current_user["display_name"]
    )
    return ProductResponse.model_validate(product)


@router.delete("/{product_id}", response_model=MessageResponse)
async def delete_product(
    product_id: int,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    product = await get_or_404(db, Product, product_id, "Product not found")
    name = product.name
    await db.delete(product)
    await db.flush()

    logger.info("product_deleted", product_id=product_id)
    await notify_admin(db, background_tasks, "deleted", "Product", name, current_user["display_name"])
    return MessageResponse(message="Product deleted")
