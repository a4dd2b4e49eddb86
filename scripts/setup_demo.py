#!/usr/bin/env python3
"""
Setup demo data for Bookkeeper
"""

import sys
from pathlib import Path
from datetime import date, timedelta

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from bookkeeper.database import SessionLocal, create_tables
from bookkeeper.errors import LedgerError
from bookkeeper.models import BankAccount, Category
from bookkeeper.services import ledger, transfers

DEMO_OWNER = "demo"


def _category(db, name):
    return db.query(Category).filter(Category.owner_id == DEMO_OWNER, Category.name == name).one()


def create_demo_data():
    """Create two accounts, a few transactions and a transfer for the demo owner"""

    # Create database tables
    create_tables()

    db = SessionLocal()
    try:
        if db.query(BankAccount).filter(BankAccount.owner_id == DEMO_OWNER).first():
            print("Demo data already exists, nothing to do")
            return

        checking = ledger.create_account(db, DEMO_OWNER, "Business Checking")
        savings = ledger.create_account(db, DEMO_OWNER, "Tax Savings")

        today = date.today()
        sample_transactions = [
            {"description": "Client invoice 1042", "amount": "4200.00", "category": "Contracting Income", "days_ago": 20},
            {"description": "Office rent", "amount": "-950.00", "category": "Rent/Office Space", "days_ago": 18},
            {"description": "Electricity", "amount": "-84.37", "category": "Utilities", "days_ago": 12},
            {"description": "Monthly account fee", "amount": "-6.00", "category": "Bank Fees", "days_ago": 10},
            {"description": "Fuel", "amount": "-61.20", "category": "Motor Vehicle Expenses", "days_ago": 4},
        ]

        for data in sample_transactions:
            ledger.create_transaction(
                db, DEMO_OWNER,
                bank_account_id=checking.id,
                date=today - timedelta(days=data["days_ago"]),
                amount=data["amount"],
                description=data["description"],
                category_id=_category(db, data["category"]).id
            )

        transfers.create_transfer(
            db, DEMO_OWNER,
            source_account_id=checking.id,
            destination_account_id=savings.id,
            date=today - timedelta(days=2),
            amount="1000.00",
            description="Set aside for taxes",
            category_id=_category(db, "Transfer to Tax Savings").id
        )

        print("Demo data created successfully!")
        print(f"Owner id: {DEMO_OWNER} (send it as the X-Owner-Id header)")
        print("Created 2 bank accounts")
        print(f"Created {len(sample_transactions)} transactions and 1 transfer")
        print(f"Checking balance: {ledger.get_account_balance(db, DEMO_OWNER, checking.id)}")
        print(f"Savings balance: {ledger.get_account_balance(db, DEMO_OWNER, savings.id)}")

    except LedgerError as e:
        print(f"Error creating demo data: {e.message}")
        sys.exit(1)
    finally:
        db.close()

if __name__ == "__main__":
    create_demo_data()
