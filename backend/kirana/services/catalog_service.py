# Overview: Catalog lookups checkout depends on (product, variant, stock status).

from __future__ import annotations

from ..extensions import db
from ..models import Product, ProductVariant, PriceTier
from ..money import to_amount
from ..validation import ValidationError, NotFoundError


def find_product(product_id: int) -> Product | None:
    return db.session.get(Product, product_id)


def find_product_variant(product: Product, variant_id: str | None) -> ProductVariant:
    """
    Resolve a client variant id ("v1") on a product.

    Products with a single variant accept a missing variant id.
    """
    variants = list(product.variants)
    if variant_id in (None, ""):
        if len(variants) == 1:
            return variants[0]
        raise ValidationError(f"variantId is required for product {product.id}")
    for variant in variants:
        if variant.code == str(variant_id):
            return variant
    raise NotFoundError(f"Variant {variant_id} not found on product {product.id}")


def stock_status(product_id: int) -> dict:
    product = find_product(product_id)
    if product is None:
        raise NotFoundError("Product not found")
    return {
        "product_id": product.id,
        "stock_quantity": product.stock_quantity,
        "low_stock_threshold": product.low_stock_threshold,
        "stock_status": product.stock_status,
    }


def create_product(
    *,
    name: str,
    variants: list[dict],
    stock_quantity: int | None = None,
    low_stock_threshold: int = 5,
    sku: str | None = None,
    barcode: str | None = None,
    is_active: bool = True,
) -> Product:
    """
    Create a product with variants and price tiers.

    variants: [{"id": "v1", "label": "1 kg", "inStock": True,
                "priceTiers": [{"minQty": 1, "price": 80}, ...]}]
    """
    if not name or not str(name).strip():
        raise ValidationError("name is required")
    if not variants:
        raise ValidationError("at least one variant is required")
    if stock_quantity is not None and stock_quantity < 0:
        raise ValidationError("stock_quantity must be >= 0")

    product = Product(
        name=str(name).strip(),
        sku=sku or None,
        barcode=barcode or None,
        stock_quantity=stock_quantity,
        low_stock_threshold=low_stock_threshold,
        is_active=is_active,
    )
    db.session.add(product)

    for index, variant_data in enumerate(variants, start=1):
        variant = ProductVariant(
            code=str(variant_data.get("id") or f"v{index}"),
            label=variant_data.get("label") or "1 unit",
            in_stock=variant_data.get("inStock", True) is not False,
        )
        seen: set[int] = set()
        for tier in variant_data.get("priceTiers") or []:
            min_qty = int(tier.get("minQty", 1))
            if min_qty < 1 or min_qty in seen:
                raise ValidationError("price tier thresholds must be unique and >= 1")
            seen.add(min_qty)
            try:
                price = to_amount(tier.get("price"), field="price")
            except ValueError as exc:
                raise ValidationError(str(exc))
            variant.tiers.append(PriceTier(min_qty=min_qty, price=price))
        if not variant.tiers:
            raise ValidationError(f"variant {variant.code} needs at least one price tier")
        product.variants.append(variant)

    db.session.commit()
    return product
