"""
Database initialization script.
Creates all tables and seeds demo signals through the lifecycle manager,
so every seeded signal carries its audit trail.
"""
import argparse
from datetime import datetime

from sqlalchemy import inspect

from blackgpt.core.correlation_aggregator import CorrelationAggregator
from blackgpt.core.exceptions import BlackGPTError
from blackgpt.core.provenance_validator import ProvenanceValidator
from blackgpt.core.signal_lifecycle import SignalInput, SignalLifecycleManager
from blackgpt.models.base import SessionLocal, engine, init_db
from blackgpt.models.signals import Signal, SourceType
from blackgpt.utils.constants import DEMO_USER_ID
from blackgpt.utils.logging import configure_logging
from config.settings import get_settings

DEMO_SIGNALS = [
    {
        "input": SignalInput(
            script_name="Bitcoin Surge Analysis",
            date_from=datetime(2024, 1, 1),
            date_to=datetime(2024, 1, 7),
            gist_text=(
                "Significant Bitcoin trading activity observed across major exchanges. "
                "Trading volume up 45% week-over-week, social sentiment shows 78% positive mentions "
                "and on-chain metrics indicate increased whale activity."
            ),
            provenance_tags=["manual:human-upload", "exchange:api", "blockchain:public"],
            created_by=DEMO_USER_ID,
            source_type=SourceType.MANUAL_UPLOAD,
            confidence_score=0.78,
        ),
        "review": None,
    },
    {
        "input": SignalInput(
            script_name="Ethereum Network Upgrade Impact",
            date_from=datetime(2024, 1, 5),
            date_to=datetime(2024, 1, 10),
            gist_text=(
                "Ethereum gas fees decreased by 30% following the network upgrade. "
                "Transaction throughput improved 25% and developer activity shows increased commits."
            ),
            provenance_tags=["blockchain:public", "etherscan:api"],
            created_by=DEMO_USER_ID,
            source_type=SourceType.BLOCKCHAIN,
            confidence_score=0.85,
        ),
        "review": ("accept", "Verified against multiple blockchain explorers"),
    },
    {
        "input": SignalInput(
            script_name="Market Sentiment Analysis",
            date_from=datetime(2024, 1, 8),
            date_to=datetime(2024, 1, 12),
            gist_text=(
                "Aggregated sentiment from public social media and news sources is cautiously optimistic. "
                "Key topics: regulation clarity, institutional adoption, ETF approval speculation."
            ),
            provenance_tags=["twitter:api", "reddit:public", "newsapi:licensed"],
            created_by=DEMO_USER_ID,
            source_type=SourceType.TWITTER,
            confidence_score=0.65,
        ),
        "review": ("followup", "Sentiment sources need a second reviewer"),
    },
]

def seed_demo_signals(db) -> int:
    """Create the demo signals unless the table already has rows."""
    if db.query(Signal).count() > 0:
        print("  ⚠ Signals already present, skipping seed")
        return 0

    lifecycle = SignalLifecycleManager(
        db=db,
        validator=ProvenanceValidator(),
        aggregator=CorrelationAggregator([]),
    )

    created = 0
    for demo in DEMO_SIGNALS:
        signal = lifecycle.create_signal(demo["input"])
        if demo["review"]:
            action, notes = demo["review"]
            lifecycle.verify_signal(signal.signal_id, DEMO_USER_ID, action, notes=notes)
        print(f"  ✓ {signal.script_name} ({signal.signal_id}) -> {signal.status}")
        created += 1
    return created

def init_database(seed: bool = True):
    """
    Initialize database.
    Steps:
    1. Create all tables from SQLAlchemy models
    2. Verify tables
    3. Seed demo signals
    """
    settings = get_settings()
    configure_logging(settings.ENV, settings.LOG_LEVEL)

    print("BLACK GPT - Database Initialization")
    print("=" * 50)

    # Step 1: Create all tables
    print("\n1. Creating all tables...")
    init_db()
    print("  ✓ All tables created")

    # Step 2: Verify
    print("\n2. Verifying tables...")
    tables = sorted(inspect(engine).get_table_names())
    print(f"  ✓ Found {len(tables)} tables:")
    for table in tables:
        print(f"    - {table}")

    # Step 3: Seed
    if seed:
        print("\n3. Seeding demo signals...")
        db = SessionLocal()
        try:
            created = seed_demo_signals(db)
            print(f"  ✓ Seeded {created} signals")
        except BlackGPTError as e:
            print(f"  ✗ Error seeding: {e.message}")
            raise
        finally:
            db.close()

    print("\n" + "=" * 50)
    print("✅ Database initialization complete!")
    print(f"\nAPI: http://{settings.API_HOST}:{settings.API_PORT}")

if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create tables and seed demo data")
    parser.add_argument("--no-seed", action="store_true", help="Only create tables")
    args = parser.parse_args()
    init_database(seed=not args.no_seed)
