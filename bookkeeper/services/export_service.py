"""
Delimited-text exports of listed transactions and category summaries.

Only the data is produced here; the HTTP layer decides how it is delivered.
"""
from typing import List

import pandas as pd

from ..schemas import CategorySummary, TransactionRow

TRANSACTION_COLUMNS = ["Date", "Bank Account", "Description", "Amount", "Category", "Running Balance"]
SUMMARY_COLUMNS = ["Category", "Total Amount", "Transaction Count"]


def display_category_name(category_name: str, parent_category_name: str = None) -> str:
    if parent_category_name:
        return f"{parent_category_name} > {category_name}"
    return category_name


def transactions_frame(rows: List[TransactionRow]) -> pd.DataFrame:
    # Decimals are written as text so exported amounts keep exactly two places
    return pd.DataFrame(
        [
            [
                row.date.isoformat(),
                row.bank_account_name or "",
                row.description,
                str(row.amount),
                row.category_name or "",
                str(row.running_balance),
            ]
            for row in rows
        ],
        columns=TRANSACTION_COLUMNS,
    )


def category_summary_frame(summaries: List[CategorySummary]) -> pd.DataFrame:
    return pd.DataFrame(
        [
            [
                display_category_name(s.category_name, s.parent_category_name),
                str(s.total),
                s.count,
            ]
            for s in summaries
        ],
        columns=SUMMARY_COLUMNS,
    )


def transactions_to_csv(rows: List[TransactionRow]) -> str:
    return transactions_frame(rows).to_csv(index=False)


def category_summaries_to_csv(summaries: List[CategorySummary]) -> str:
    return category_summary_frame(summaries).to_csv(index=False)
