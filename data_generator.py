import os
from typing import List, Optional

import numpy as np
import pandas as pd

from heart_pipeline.bronze import REQUIRED_COLUMNS
from heart_pipeline.silver import MISSING_MARKER


def generate_heart_records(
    num_records: int = 300,
    duplicate_rate: float = 0.05,
    missing_rate: float = 0.02,
    seed: Optional[int] = None
) -> List[dict]:
    """
    Generate synthetic raw heart-disease rows, shaped like the Kaggle export.

    Values are strings, the way they arrive from a CSV. A share of rows is
    repeated verbatim and some ca/thal values are replaced by the '?' marker,
    sometimes padded with spaces.
    """
    rng = np.random.default_rng(seed)
    records = []
    for _ in range(num_records):
        record = {
            "age": str(rng.integers(29, 78)),
            "sex": str(rng.integers(0, 2)),
            "cp": str(rng.integers(0, 4)),
            "trestbps": str(rng.integers(94, 201)),
            "chol": str(rng.integers(126, 565)),
            "fbs": str(int(rng.random() < 0.15)),
            "restecg": str(rng.integers(0, 3)),
            "thalach": str(rng.integers(71, 203)),
            "exang": str(int(rng.random() < 0.33)),
            "oldpeak": str(round(float(rng.uniform(0, 6.2)), 1)),
            "slope": str(rng.integers(0, 3)),
            "ca": str(rng.integers(0, 4)),
            "thal": str(rng.choice([1, 2, 3])),
            "target": str(int(rng.random() < 0.54)),
        }
        for column in ("ca", "thal"):
            if rng.random() < missing_rate:
                record[column] = rng.choice([MISSING_MARKER, f" {MISSING_MARKER} "])
        records.append(record)

    num_duplicates = int(num_records * duplicate_rate)
    if records and num_duplicates:
        picks = rng.integers(0, len(records), size=num_duplicates)
        records.extend(dict(records[i]) for i in picks)
    return records


def write_heart_csv(output_file: str, **kwargs) -> str:
    """Write generated records to output_file and return its path."""
    os.makedirs(os.path.dirname(os.path.abspath(output_file)), exist_ok=True)
    df = pd.DataFrame(generate_heart_records(**kwargs), columns=REQUIRED_COLUMNS)
    df.to_csv(output_file, index=False)
    return output_file


if __name__ == "__main__":
    BASE_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__)))
    output_dir = os.path.join(BASE_DIR, "data", "sample")
    output_file = os.path.join(output_dir, "heart.csv")
    write_heart_csv(output_file, num_records=300, seed=42)
    print(f"Generated CSV file at: {output_file}")
