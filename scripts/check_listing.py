"""Manual adapter runner for testing and debugging sources.

Fetches one target through the same adapters the scheduler uses and prints
what came back. Nothing is written to the database.

Usage:
    python scripts/check_listing.py item https://www.ebay.co.uk/itm/256123456789
    python scripts/check_listing.py supplier https://www.amazon.co.uk/dp/B000000000
    python scripts/check_listing.py store https://www.ebay.co.uk/str/mystore --limit 5
    python scripts/check_listing.py competitors "Haribo Starmix 160g" --price 1.99
"""

import argparse
import asyncio
import traceback
from decimal import Decimal

from listingwatch.core.logging import configure_logging
from listingwatch.scrapers.base import Snapshot
from listingwatch.scrapers.factory import AdapterFactory


def _print_snapshot(snapshot: Snapshot) -> None:
    print(f"  Title:   {snapshot.title}")
    print(f"  Price:   {_format_price(snapshot.price)}")
    print(f"  Stock:   {snapshot.stock_state}")
    print(f"  Source:  {snapshot.source}")
    if snapshot.item_id:
        print(f"  Item ID: {snapshot.item_id}")
    if snapshot.seller_id:
        print(f"  Seller:  {snapshot.seller_id}")
    for variation in snapshot.variations:
        print(f"  Option:  {variation['name']} -> {', '.join(variation['options'])}")
    for image in snapshot.images:
        print(f"  Image:   {image}")


def _format_price(price: Decimal) -> str:
    return f"£{price:,.2f}" if price is not None else "-"


async def run_check(args: argparse.Namespace) -> None:
    """Run the requested adapter and display the results."""
    factory = AdapterFactory()

    print(f"\n{'='*70}")
    print(f"  Checking {args.kind}: {args.target}")
    print(f"{'='*70}\n")

    try:
        if args.kind == "item":
            _print_snapshot(await factory.marketplace.fetch_item(args.target))

        elif args.kind == "supplier":
            supplier = factory.supplier.detect_supplier(args.target)
            print(f"  Supplier: {supplier}")
            _print_snapshot(await factory.supplier.fetch(args.target))

        elif args.kind == "store":
            store = await factory.store_import.fetch_store_listings(args.target)
            print(f"  Store:   {store.store_name}")
            print(f"  Seller:  {store.seller_id or 'unresolved'}")
            print(f"  Source:  {store.source}")
            print(f"  Items:   {len(store.items)}\n")
            for i, item in enumerate(store.items[: args.limit], 1):
                print(f"[{i}] {item.title}")
                print(f"    Price: {_format_price(item.price)}  Stock: {item.stock_state}")
                print(f"    URL:   {item.url}")

        elif args.kind == "competitors":
            price = Decimal(args.price) if args.price else None
            insights = await factory.competitor.fetch_insights(args.target, price)
            if insights is None:
                print("  No competitors found.")
            else:
                summary = insights.summary
                print(f"  Lowest:  {_format_price(summary.lowest_price)} by {summary.seller_name}")
                print(f"  Sellers: {summary.total_sellers}")
                if summary.difference_to_our_price is not None:
                    print(f"  Gap:     {_format_price(summary.difference_to_our_price)}")
                for listing in insights.listings[: args.limit]:
                    print(f"    {_format_price(listing.price):>10}  {listing.seller_name}  {listing.title[:50]}")

    except Exception as e:
        print("\nError occurred while checking:")
        print(f"   {type(e).__name__}: {e}")
        traceback.print_exc()

    finally:
        await factory.close()
        print()


def main():
    """Parse arguments and run the check."""
    parser = argparse.ArgumentParser(
        description="Fetch one target through a listingwatch adapter",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "kind",
        choices=["item", "supplier", "store", "competitors"],
        help="What to fetch",
    )
    parser.add_argument("target", help="Listing/supplier/store URL, or a title for competitors")
    parser.add_argument(
        "--limit",
        type=int,
        default=10,
        help="Maximum number of listings to display (default: 10)",
    )
    parser.add_argument("--price", help="Our price, for the competitor gap")
    parser.add_argument("--log-level", default="WARNING", help="Log level (default: WARNING)")

    args = parser.parse_args()
    configure_logging(level=args.log_level, json_output=False)

    asyncio.run(run_check(args))


if __name__ == "__main__":
    main()
