import argparse
import json

from app.db.kv import KeyValueStore
from app.db.session import SessionLocal, engine, init_db
from app.services.pricing import PricingCatalog

PRICES = {"beginner": "2.40", "average": "4.50", "expert": "6.50"}

def main():
    parser = argparse.ArgumentParser(description="Write the cached account price feed (tillfetch).")
    for tier, default in PRICES.items():
        parser.add_argument(f"--{tier}", default=default, help=f"{tier} price in USD (default {default})")
    args = parser.parse_args()

    init_db(engine)
    catalog = PricingCatalog(KeyValueStore(SessionLocal))
    prices = catalog.set_sample_prices(args.beginner, args.average, args.expert)
    print("Seeded prices:", json.dumps({tier.value: price for tier, price in prices.items()}))

if __name__ == "__main__":
    main()
