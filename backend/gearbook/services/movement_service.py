# Overview: Service-layer operations for product movements (physical checkout/return records).

from __future__ import annotations

from ..models import MovementPhoto, Product, ProductMovement
from ..models.reservations import CONDITION_OK, CONDITIONS, MOVEMENT_TYPES
from ..time_utils import utcnow
from ..validation import NotFoundError, ValidationError
from .concurrency import lock_for_update

"""
Movement Invariants

- Movements are append-only; nothing here updates or deletes a row.
- Product.last_condition / last_movement_at are written only by
  create_movement, in the same unit of work as the movement row.
- Reservation status is NOT checked here. The reservation service
  validates the transition before recording the movement.
"""

DEFAULT_MAX_PHOTOS = 3
PRODUCT_MOVEMENTS_LIMIT = 50


class MovementRecorder:
    def __init__(self, max_photos: int = DEFAULT_MAX_PHOTOS):
        self.max_photos = max_photos

    def _validate_photos(self, photos: list[dict] | None) -> list[dict]:
        photos = list(photos or [])
        if len(photos) > self.max_photos:
            raise ValidationError(
                f"At most {self.max_photos} photos per movement",
                details={"max_photos": self.max_photos, "received": len(photos)},
            )
        for index, photo in enumerate(photos):
            key = (photo.get("key") or "").strip()
            if not key:
                raise ValidationError(f"photos[{index}].key is required")
        return photos

    def create_movement(
        self,
        session,
        *,
        product_id: int,
        type: str,
        performed_by: int,
        reservation_id: int | None = None,
        condition: str | None = None,
        notes: str | None = None,
        photos: list[dict] | None = None,
    ) -> ProductMovement:
        """
        Record a CHECKOUT or RETURN and update the product's last-known condition.

        Does not commit.
        """
        if type not in MOVEMENT_TYPES:
            raise ValidationError(f"Unknown movement type '{type}'")
        condition = condition or CONDITION_OK
        if condition not in CONDITIONS:
            raise ValidationError(f"Unknown condition '{condition}'")
        photos = self._validate_photos(photos)

        product = lock_for_update(session.query(Product).filter(Product.id == product_id)).first()
        if not product:
            raise NotFoundError("Product not found", details={"product_id": product_id})

        now = utcnow()
        movement = ProductMovement(
            product_id=product.id,
            reservation_id=reservation_id,
            type=type,
            condition=condition,
            notes=notes,
            performed_by_user_id=performed_by,
            performed_at=now,
        )
        session.add(movement)
        session.flush()

        for index, photo in enumerate(photos):
            session.add(MovementPhoto(
                movement_id=movement.id,
                key=photo["key"].strip(),
                filename=photo.get("filename") or photo["key"].rsplit("/", 1)[-1],
                mime_type=photo.get("mime_type") or "application/octet-stream",
                size=int(photo.get("size") or 0),
                sort_order=index,
            ))

        product.last_condition = condition
        product.last_movement_at = now
        session.flush()
        return movement

    def list_movements(
        self,
        session,
        *,
        product_id: int | None = None,
        reservation_id: int | None = None,
        type: str | None = None,
        page: int = 1,
        limit: int = 20,
        order: str = "desc",
    ) -> dict:
        if type is not None and type not in MOVEMENT_TYPES:
            raise ValidationError(f"Unknown movement type '{type}'")
        page = max(page or 1, 1)
        limit = min(max(limit or 20, 1), 100)

        query = session.query(ProductMovement)
        if product_id is not None:
            query = query.filter(ProductMovement.product_id == product_id)
        if reservation_id is not None:
            query = query.filter(ProductMovement.reservation_id == reservation_id)
        if type is not None:
            query = query.filter(ProductMovement.type == type)

        total = query.count()
        if order == "asc":
            query = query.order_by(ProductMovement.performed_at.asc(), ProductMovement.id.asc())
        else:
            query = query.order_by(ProductMovement.performed_at.desc(), ProductMovement.id.desc())
        rows = query.offset((page - 1) * limit).limit(limit).all()
        return {"items": rows, "page": page, "limit": limit, "total": total}

    def product_movements(self, session, product_id: int) -> list[ProductMovement]:
        if session.get(Product, product_id) is None:
            raise NotFoundError("Product not found", details={"product_id": product_id})
        return (
            session.query(ProductMovement)
            .filter(ProductMovement.product_id == product_id)
            .order_by(ProductMovement.performed_at.desc(), ProductMovement.id.desc())
            .limit(PRODUCT_MOVEMENTS_LIMIT)
            .all()
        )
