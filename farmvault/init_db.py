import argparse
import logging

from farmvault.config import settings
from farmvault.db import init_db
from farmvault.seed_example import seed


def main() -> None:
    parser = argparse.ArgumentParser(description='Create FarmVault tables, optionally loading demo data.')
    parser.add_argument('--seed', action='store_true', help='Insert the demo company, users, project and inventory.')
    args = parser.parse_args()

    logging.basicConfig(
        level=settings.log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )
    init_db()
    if args.seed:
        seed()
        print('Seed data inserted/verified.')
    print('Database ready.')


if __name__ == '__main__':
    main()
