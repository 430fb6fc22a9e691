from sqlalchemy import CheckConstraint, Column, Float, Integer, String

from .db import Base


class Product(Base):
    __tablename__ = "product"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(120), nullable=False)
    price = Column(Float, nullable=False, default=0.0)
    stock = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_product_price"),
        CheckConstraint("stock >= 0", name="ck_product_stock"),
    )

    def to_dict(self):
        return {"_id": str(self.id), "name": self.name, "price": float(self.price), "stock": int(self.stock)}


class Customer(Base):
    __tablename__ = "customer"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(120), nullable=False)
    phone = Column(String(40), nullable=True)
    discount_percentage = Column(Float, nullable=False, default=0.0)

    def to_dict(self):
        return {
            "_id": str(self.id),
            "name": self.name,
            "phone": self.phone or "",
            "discountPercentage": float(self.discount_percentage or 0),
        }
