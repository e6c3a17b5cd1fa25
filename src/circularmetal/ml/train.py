import argparse
import json
from pathlib import Path

import joblib
import pandas as pd

from circularmetal.backend.model_server import FEATURE_NAMES
from circularmetal.ml.model_utils import (
    energy_models_to_dict,
    fit_energy_models,
    fit_recycling_tree,
    tree_to_dict,
)
from circularmetal.ml.synthetic_data import generate_energy_samples, generate_recycling_rate_samples


def load_or_generate(path: Path, generator) -> pd.DataFrame:
    try:
        df = pd.read_csv(path)
        print(f"📖 Loaded training data from '{path}'")
    except FileNotFoundError:
        print(f"⚠️ Data file not found at '{path}'. Generating synthetic data.")
        df = generator()
        path.parent.mkdir(parents=True, exist_ok=True)
        df.to_csv(path, index=False)
        print(f"💾 Saved new synthetic data to '{path}'")
    return df


def main(argv=None):
    """Fits the imputation models and exports them as JSON artifacts (plus joblib dumps)."""
    parser = argparse.ArgumentParser(description="Train and export the LCA imputation models.")
    parser.add_argument("--energy-data", type=str, default="data/energy_samples.csv", help="CSV with material, recycledContent, energy_kWh_per_kg.")
    parser.add_argument("--rates-data", type=str, default="data/recycling_rates.csv", help="CSV with material, product_type, region, end_of_life_recycling_rate.")
    parser.add_argument("--out", type=str, default="models", help="Output directory for the artifacts.")
    parser.add_argument("--max-depth", type=int, default=4, help="Maximum depth of the recycling-rate tree.")
    args = parser.parse_args(argv)

    out_dir = Path(args.out)
    out_dir.mkdir(parents=True, exist_ok=True)

    energy_df = load_or_generate(Path(args.energy_data), generate_energy_samples)
    energy_models = fit_energy_models(energy_df)
    energy_artifact = energy_models_to_dict(energy_models, "linreg-energy-v1 (energy_kWh_per_kg ~ recycledContent)")
    with open(out_dir / "energy_model.json", "w", encoding="utf-8") as f:
        json.dump(energy_artifact, f, indent=2)
    joblib.dump(energy_models, out_dir / "energy_models.pkl")

    rates_df = load_or_generate(Path(args.rates_data), generate_recycling_rate_samples)
    tree = fit_recycling_tree(rates_df, max_depth=args.max_depth)
    tree_artifact = {
        "description": f"DecisionTreeRegressor(max_depth={args.max_depth}) on end-of-life recycling rates "
                       "by material, product type and region",
        "feature_names": list(FEATURE_NAMES),
        "root": tree_to_dict(tree, FEATURE_NAMES),
    }
    with open(out_dir / "tree_model.json", "w", encoding="utf-8") as f:
        json.dump(tree_artifact, f, indent=2)
    joblib.dump(tree, out_dir / "recycling_tree.pkl")

    print(f"✅ Models successfully trained and saved to '{out_dir}'")
    return out_dir


if __name__ == "__main__":
    main()
