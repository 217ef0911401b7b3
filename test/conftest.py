import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


def add_product(store, code: str, name: str, retail_price, mrp=None, stock: int = 10, min_stock: int = 2, **extra):
    from gstpos.domain.models import Product

    fields = {
        "product_code": code,
        "name": name,
        "retail_price": retail_price,
        "mrp": retail_price if mrp is None else mrp,
        "current_stock": stock,
        "min_stock": min_stock,
        "active": True,
        **extra,
    }
    return Product.from_record(store.create("products", fields))
