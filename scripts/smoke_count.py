import sys
import tempfile
import time
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from partscan.codec import convert_dataset  # noqa: E402
from partscan.generate import TRIPS_SCHEMA, generate_trips  # noqa: E402
from partscan.locator import COLUMN, ROW, open_dataset  # noqa: E402
from partscan.strategies import STRATEGIES, STRATEGY_ENCODING, count_where  # noqa: E402


def main() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        row_root = Path(tmp) / "csv"
        column_root = Path(tmp) / "parquet"
        generate_trips(row_root, years=[2020], months=[1, 2], rows_per_unit=1000)
        convert_dataset(row_root, column_root, TRIPS_SCHEMA)

        datasets = {
            ROW: open_dataset(row_root, TRIPS_SCHEMA, encoding=ROW),
            COLUMN: open_dataset(column_root, TRIPS_SCHEMA, encoding=COLUMN),
        }
        for name in STRATEGIES:
            t0 = time.perf_counter()
            n = count_where(
                datasets[STRATEGY_ENCODING[name]], "hvfhs_license_num", "HV0005", strategy=name
            )
            print({"strategy": name, "time_s": time.perf_counter() - t0, "count": n})


if __name__ == "__main__":
    main()
