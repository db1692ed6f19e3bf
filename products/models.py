"""
Product model for the shop back-office.

Catalog CRUD lives outside the order/payment core; the core only resolves
products at order time to snapshot their identity and price and to check and
reserve stock.
"""

from decimal import Decimal

from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import F
from django.utils.translation import gettext_lazy as _


class Product(models.Model):
    """
    An item available for sale.

    Archived products keep ``is_active=False`` rather than being deleted so that
    past order lines still point at a real row.
    """

    name = models.CharField(max_length=200, db_index=True)
    sku = models.CharField(max_length=100, unique=True, db_index=True)
    featured_image = models.CharField(
        max_length=500,
        blank=True,
        help_text=_("URL or storage path of the main product image"),
    )

    # Prices are XAF amounts; DecimalField keeps totals exact
    price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.00'))],
    )

    # Inventory
    stock_quantity = models.PositiveIntegerField(default=0)
    low_stock_threshold = models.PositiveIntegerField(default=5)
    track_stock = models.BooleanField(
        default=True,
        help_text=_("If False, the product is always considered in stock"),
    )

    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['is_active']),
            models.Index(fields=['stock_quantity']),
        ]
        verbose_name = _("Product")
        verbose_name_plural = _("Products")

    def __str__(self):
        return f"{self.name} (SKU: {self.sku})"

    def is_in_stock(self) -> bool:
        if not self.track_stock:
            return True
        return self.stock_quantity > 0

    def is_low_stock(self) -> bool:
        if not self.track_stock:
            return False
        return self.stock_quantity <= self.low_stock_threshold

    def has_stock_for(self, quantity: int) -> bool:
        if not self.track_stock:
            return True
        return self.stock_quantity >= quantity

    def reduce_stock(self, quantity: int) -> None:
        """
        Decrement stock by ``quantity`` with an atomic ``F()`` update.

        Callers check availability first, holding a row lock from
        ``select_for_update`` inside their transaction.
        """
        if quantity <= 0:
            raise ValueError("Quantity must be positive")
        if not self.track_stock:
            return
        Product.objects.filter(pk=self.pk).update(stock_quantity=F('stock_quantity') - quantity)
        self.refresh_from_db(fields=['stock_quantity'])

    def increase_stock(self, quantity: int) -> None:
        if quantity <= 0:
            raise ValueError("Quantity must be positive")
        if not self.track_stock:
            return
        Product.objects.filter(pk=self.pk).update(stock_quantity=F('stock_quantity') + quantity)
        self.refresh_from_db(fields=['stock_quantity'])
