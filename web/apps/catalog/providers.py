from .repository import ProductRepository


def get_catalog() -> ProductRepository:
    return ProductRepository()
