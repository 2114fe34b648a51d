import os
import sys

BASE_DIR = os.path.dirname(os.path.dirname(__file__))
if BASE_DIR not in sys.path:
    sys.path.insert(0, BASE_DIR)

from app import create_app
from app.db import get_db, init_db
from app.contexts.rfq.infrastructure.repositories import ProcurementRequestRepository
from app.tenant import DEFAULT_TENANT_ID


app = create_app()


if __name__ == "__main__":
    with app.app_context():
        init_db()
        seed_count = int(os.environ.get("RFQ_SEED_REQUESTS", "0") or 0)
        if seed_count > 0:
            tenant_id = os.environ.get("RFQ_SEED_TENANT", DEFAULT_TENANT_ID)
            db = get_db()
            repo = ProcurementRequestRepository(tenant_id=tenant_id)
            for index in range(1, seed_count + 1):
                repo.create(db, status="pending", code=f"REQ-{index:04d}", title=f"Demo request {index}")
            db.commit()
    print("Database initialized.")
