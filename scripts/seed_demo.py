"""Seed a demo seller, protected file and payment link for local testing.

Usage:
    python -m scripts.seed_demo                      # defaults below
    python -m scripts.seed_demo path/to/demo.json    # optional JSON file

JSON file format:
{
  "seller": {"full_name": "Ada Seller", "email": "ada@example.com", "plan_type": "professional"},
  "file": {"title": "Design Kit", "price": 50.00, "file_type": "application/zip",
           "file_path": "demo/design-kit.zip", "file_size": 1048576},
  "link": {"max_downloads": 3, "custom_price": null, "expires_in_days": 30, "link_code": "demo-kit"}
}

The file itself is served from FILE_STORAGE_DIR (or the Supabase bucket when
configured); place it at <FILE_STORAGE_DIR>/<file_path>.
"""
import sys, json, logging
from datetime import timedelta
from decimal import Decimal
from pathlib import Path

# Allow running from project root or backend folder
CURRENT_DIR = Path(__file__).resolve().parent
BACKEND_ROOT = CURRENT_DIR.parent
sys.path.append(str(BACKEND_ROOT))

from db.session import SessionLocal, create_tables  # type: ignore
from crud.payment_link import create_payment_link  # type: ignore
from models import SellerProfile, ProtectedFile  # type: ignore
from utilities.timeutils import utcnow  # type: ignore

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
logger = logging.getLogger("seed_demo")

DEFAULT_DEMO = {
    "seller": {"full_name": "Demo Seller", "email": "seller@example.com", "plan_type": "professional"},
    "file": {
        "title": "Demo Design Kit",
        "description": "Sample protected file",
        "price": 50.00,
        "file_type": "application/zip",
        "file_path": "demo/design-kit.zip",
        "file_size": 1048576,
    },
    "link": {"max_downloads": 3, "custom_price": None, "expires_in_days": 30},
}

def load_input(path: Path = None) -> dict:
    if not path:
        return DEFAULT_DEMO
    return json.loads(path.read_text(encoding="utf-8"))

def seed(demo: dict):
    create_tables()
    with SessionLocal() as db:
        seller = SellerProfile(**demo["seller"])
        db.add(seller)
        db.flush()

        file_data = dict(demo["file"])
        file_data["price"] = Decimal(str(file_data["price"]))
        file = ProtectedFile(owner_id=seller.id, **file_data)
        db.add(file)
        db.commit()
        db.refresh(file)

        link_cfg = demo.get("link", {})
        days = link_cfg.get("expires_in_days")
        custom_price = link_cfg.get("custom_price")
        link = create_payment_link(
            db,
            file,
            max_downloads=int(link_cfg.get("max_downloads", 1)),
            custom_price=Decimal(str(custom_price)) if custom_price is not None else None,
            expires_at=utcnow() + timedelta(days=days) if days else None,
            link_code=link_cfg.get("link_code"),
        )
        logger.info("Seeded link code %s for file '%s' (seller %s)", link.link_code, file.title, seller.id)
        return link.link_code

if __name__ == "__main__":
    arg = sys.argv[1] if len(sys.argv) > 1 else None
    json_path = Path(arg) if arg else None
    if json_path and not json_path.exists():
        logger.error("JSON file not found: %s", json_path)
        sys.exit(1)
    seed(load_input(json_path))
    logger.info("Done.")
