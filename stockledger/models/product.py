from tortoise import fields, models
import uuid


class Product(models.Model):
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    slug = fields.CharField(max_length=255, unique=True)
    name_en = fields.CharField(max_length=255)
    name_sw = fields.CharField(max_length=255, null=True)
    price_cents = fields.IntField()
    is_active = fields.BooleanField(default=True)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "products"
        indexes = [
            ("is_active",),  # Storefront only lists active products
        ]
