from __future__ import annotations

import logging

from gstpos.application.container import build_container
from gstpos.config import get_app_paths
from gstpos.logging_config import setup_logging

log = logging.getLogger("gstpos")


def main() -> None:
    paths = get_app_paths()
    setup_logging(paths.logs_dir, level=logging.INFO)

    container = build_container(paths.db_path, sessions_dir=paths.sessions_dir)
    stats = container.reporting.dashboard()
    log.info("startup db=%s integrity=%s", paths.db_path, container.store.integrity_check())

    print(f"Database: {paths.db_path}")
    print(f"Today: {stats.today_count} invoice(s), total {stats.today_total}")
    print(f"Low stock: {stats.low_stock_count}  Negative stock: {stats.negative_stock_count}")


if __name__ == "__main__":
    main()
