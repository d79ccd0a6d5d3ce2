from __future__ import annotations

import argparse
import os


def main() -> None:
    ap = argparse.ArgumentParser(description="Shift scheduler - data loader")
    ap.add_argument("--config", type=str, default="config.yaml")
    ap.add_argument("--data-dir", type=str, default="data")
    ap.add_argument(
        "--export-csv", action="store_true", help="Export the validated tables as debug CSVs"
    )
    ap.add_argument(
        "--export-dir",
        type=str,
        default=None,
        help="Destination folder for the debug CSVs (default: <data-dir>/_loaded)",
    )
    args = ap.parse_args()

    from . import load_all

    data = load_all(args.config, args.data_dir)

    print("OK: data loaded.")
    print(f"- users: {len(data.users)} ({sum(u.is_test_account for u in data.users)} test accounts)")
    print(f"- shifts in horizon: {len(data.shifts)}")
    print(f"- template role requirements: {len(data.template_roles_df)}")
    print(f"- availability slots: {len(data.availability_df)}")
    print(f"- availability user-days: {len(data.availability)}")
    print(f"- conditions: {len(data.conditions)}")

    if args.export_csv:
        if args.export_dir is None:
            outdir = os.path.join(args.data_dir, "_loaded")
        else:
            outdir = args.export_dir
            if not os.path.isabs(outdir):
                outdir = os.path.join(args.data_dir, outdir)
        os.makedirs(outdir, exist_ok=True)
        data.users_df.to_csv(os.path.join(outdir, "users_processed.csv"), index=False)
        data.shifts_df.to_csv(os.path.join(outdir, "shifts_in_horizon.csv"), index=False)
        data.template_roles_df.to_csv(os.path.join(outdir, "template_roles_processed.csv"), index=False)
        data.availability_df.to_csv(os.path.join(outdir, "availability_processed.csv"), index=False)
        print(f"Exported debug CSVs to: {outdir}")


if __name__ == "__main__":  # pragma: no cover - entry point
    main()
