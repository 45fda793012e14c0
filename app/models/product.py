# app/models/product.py
from sqlalchemy import BigInteger, Boolean, Column, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import relationship

from app.db.session import Base

class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    sku = Column(String, unique=True, nullable=True)

    # Цены в целых VND
    base_price = Column(BigInteger, nullable=False)
    sale_price = Column(BigInteger, nullable=True)

    stock_quantity = Column(Integer, nullable=False, default=0, server_default='0')
    sold_count = Column(Integer, nullable=False, default=0, server_default='0')
    is_active = Column(Boolean, default=True, nullable=False, server_default='true')

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    variants = relationship("ProductVariant", back_populates="product")


class ProductVariant(Base):
    __tablename__ = "product_variants"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    sku = Column(String, nullable=True)

    price = Column(BigInteger, nullable=False)
    sale_price = Column(BigInteger, nullable=True)

    stock_quantity = Column(Integer, nullable=False, default=0, server_default='0')
    is_active = Column(Boolean, default=True, nullable=False, server_default='true')

    product = relationship("Product", back_populates="variants")
