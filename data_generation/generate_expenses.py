"""
Synthetic expense history for local runs and demos.

Steps:
1. For each user and category, draw daily-ish expenses around a
   category-specific baseline amount.
2. Add a few income rows (type != expense) that detection must ignore.
3. Inject amount spikes into a small fraction of expenses and tag them with
   anomaly_pattern = 'amount_spike' for later inspection.
4. Optionally corrupt a handful of amounts/dates the way exported documents
   sometimes are ('n/a', '', 'not-a-date').
"""

import argparse
from pathlib import Path

import numpy as np
import pandas as pd

CATEGORY_BASELINES = {
    'groceries': ('Groceries', 60.0, 12.0),
    'dining': ('Dining Out', 35.0, 10.0),
    'transport': ('Transport', 15.0, 4.0),
    'utilities': ('Utilities', 120.0, 8.0),
    'entertainment': (None, 25.0, 9.0),  # No display name: exercises the fallback name
}


def generate_user_expenses(
    user_id: str,
    n_per_category: int = 40,
    start: str = '2025-01-01',
    rng: np.random.Generator = None
) -> pd.DataFrame:
    """One user's expense and income history, sorted by date."""
    rng = rng if rng is not None else np.random.default_rng(42)
    start_ts = pd.Timestamp(start, tz='UTC')

    rows = []
    for category, (display_name, mean, std) in CATEGORY_BASELINES.items():
        offsets = np.sort(rng.integers(0, n_per_category * 2, size=n_per_category))
        amounts = np.clip(rng.normal(mean, std, size=n_per_category), 1.0, None)
        for i, (offset, amount) in enumerate(zip(offsets, amounts)):
            rows.append({
                'user_id': user_id,
                'id': f"{user_id}_{category}_{i:04d}",
                'amount': round(float(amount), 2),
                'date': (start_ts + pd.Timedelta(days=int(offset), hours=int(rng.integers(8, 22)))).isoformat(),
                'category': category,
                'category_name': display_name,
                'type': 'expense',
                'anomaly_pattern': None,
            })

    for i in range(max(1, n_per_category // 10)):
        rows.append({
            'user_id': user_id,
            'id': f"{user_id}_income_{i:04d}",
            'amount': 2500.0,
            'date': (start_ts + pd.Timedelta(days=30 * i)).isoformat(),
            'category': 'salary',
            'category_name': 'Salary',
            'type': 'income',
            'anomaly_pattern': None,
        })

    df = pd.DataFrame(rows)
    return df.sort_values('date').reset_index(drop=True)


def inject_amount_spikes(
    df: pd.DataFrame,
    fraction: float = 0.02,
    multiplier: float = 8.0,
    rng: np.random.Generator = None
) -> pd.DataFrame:
    """
    Multiply the amount of a random subset of expenses.

    Logic:
    1. Pick `fraction` of expense rows (at least 1), at most one per
       (user, category) history so every spike stands alone in its category.
    2. Multiply their amount by `multiplier`.
    3. Tag them anomaly_pattern = 'amount_spike'.
    """
    rng = rng if rng is not None else np.random.default_rng(7)
    df = df.copy()

    expenses = df[df['type'] == 'expense']
    if expenses.empty:
        print("no expense rows found to inject spikes")
        return df

    num_to_inject = max(1, int(len(expenses) * fraction))
    candidates = expenses.sample(frac=1.0, random_state=rng).drop_duplicates(['user_id', 'category'])
    spike_idxs = candidates.index[:num_to_inject]
    num_to_inject = len(spike_idxs)

    df.loc[spike_idxs, 'amount'] = (df.loc[spike_idxs, 'amount'].astype(float) * multiplier).round(2)
    df.loc[spike_idxs, 'anomaly_pattern'] = 'amount_spike'

    print(f"   -> Injected 'amount_spike' into {num_to_inject} rows")
    return df


def inject_malformed_fields(
    df: pd.DataFrame,
    n_rows: int = 3,
    rng: np.random.Generator = None
) -> pd.DataFrame:
    """Replace a few amounts and dates with unparseable text."""
    rng = rng if rng is not None else np.random.default_rng(11)
    df = df.copy().astype({'amount': object, 'date': object})

    clean_idxs = df.index[df['anomaly_pattern'].isna() & (df['type'] == 'expense')].tolist()
    n_rows = min(n_rows, len(clean_idxs))
    if n_rows == 0:
        return df

    chosen = rng.choice(clean_idxs, size=n_rows, replace=False)
    for j, idx in enumerate(chosen):
        if j % 2 == 0:
            df.at[idx, 'amount'] = 'n/a'
        else:
            df.at[idx, 'date'] = 'not-a-date'
        df.at[idx, 'anomaly_pattern'] = 'malformed'

    print(f"   -> Corrupted {n_rows} rows with malformed amount/date")
    return df


def generate_dataset(
    n_users: int = 3,
    n_per_category: int = 40,
    seed: int = 42,
    malformed_rows: int = 3
) -> pd.DataFrame:
    rng = np.random.default_rng(seed)
    frames = [
        generate_user_expenses(f"user_{u:03d}", n_per_category=n_per_category, rng=rng)
        for u in range(n_users)
    ]
    df = pd.concat(frames, ignore_index=True)
    df = inject_amount_spikes(df, rng=rng)
    if malformed_rows:
        df = inject_malformed_fields(df, n_rows=malformed_rows, rng=rng)
    return df


def main():
    parser = argparse.ArgumentParser(description="Generate a synthetic expense dataset")
    parser.add_argument("--users", type=int, default=3)
    parser.add_argument("--per-category", type=int, default=40)
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument(
        "--output",
        default=str(Path(__file__).parent.parent / "data" / "processed" / "expenses.csv")
    )
    args = parser.parse_args()

    print("Starting Expense Generation Pipeline.")
    df = generate_dataset(n_users=args.users, n_per_category=args.per_category, seed=args.seed)

    output_path = Path(args.output)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(output_path, index=False)
    print(f"DONE! {len(df):,} rows written to {output_path}")


if __name__ == "__main__":
    main()
