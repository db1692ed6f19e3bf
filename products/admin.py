from django.contrib import admin

from .models import Product


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ['name', 'sku', 'price', 'stock_quantity', 'track_stock', 'is_active']
    list_filter = ['is_active', 'track_stock']
    search_fields = ['name', 'sku']
    readonly_fields = ['created_at', 'updated_at']
