import pandas as pd
import numpy as np
from pathlib import Path

MATERIALS = ["Aluminium", "Copper"]
PRODUCT_TYPES = {
    "Aluminium": ["Automotive Components", "Beverage Can", "Building Construction", "Cookware", "Packaging Foil"],
    "Copper": ["Building Construction", "Electronics (PCB)", "Industrial Cable"],
}
REGIONS = ["EU", "IN", "NA", "SEA"]

# Typical end-of-life recycling rates by product type, before regional adjustment
BASE_RECYCLING_RATES = {
    "Automotive Components": 0.90,
    "Beverage Can": 0.70,
    "Building Construction": 0.92,
    "Cookware": 0.50,
    "Packaging Foil": 0.35,
    "Electronics (PCB)": 0.25,
    "Industrial Cable": 0.72,
}
REGION_ADJUSTMENT = {"EU": 0.05, "IN": -0.05, "NA": -0.12, "SEA": -0.08}

# Energy intensity (kWh/kg) at 0% and 100% recycled content
ENERGY_ENDPOINTS = {"Aluminium": (15.5, 0.78), "Copper": (4.75, 0.8)}


def generate_energy_samples(n_samples: int = 1000, seed: int = 42) -> pd.DataFrame:
    """
    Synthetic energy intensity vs. recycled content, one row per observed batch.
    Energy falls linearly from the primary to the fully recycled endpoint, with noise.
    """
    rng = np.random.default_rng(seed)

    materials = rng.choice(MATERIALS, size=n_samples, p=[0.6, 0.4])
    recycled_content = rng.uniform(0, 100, n_samples)

    primary = np.array([ENERGY_ENDPOINTS[m][0] for m in materials])
    secondary = np.array([ENERGY_ENDPOINTS[m][1] for m in materials])
    energy = primary - (recycled_content / 100) * (primary - secondary)
    energy = energy * rng.normal(1, 0.03, n_samples)

    return pd.DataFrame({
        "material": materials,
        "recycledContent": recycled_content,
        "energy_kWh_per_kg": energy,
    })


def generate_recycling_rate_samples(n_samples: int = 2000, seed: int = 42) -> pd.DataFrame:
    """
    Synthetic end-of-life recycling rates by material, product type and region.
    About 10% of the targets are blanked out to mimic real reporting gaps.
    """
    rng = np.random.default_rng(seed)

    materials = rng.choice(MATERIALS, size=n_samples, p=[0.6, 0.4])
    product_types = np.array([rng.choice(PRODUCT_TYPES[m]) for m in materials])
    regions = rng.choice(REGIONS, size=n_samples)

    base = np.array([BASE_RECYCLING_RATES[p] for p in product_types])
    adjustment = np.array([REGION_ADJUSTMENT[r] for r in regions])
    rates = np.clip(base + adjustment + rng.normal(0, 0.03, n_samples), 0.0, 1.0)

    df = pd.DataFrame({
        "material": materials,
        "product_type": product_types,
        "region": regions,
        "end_of_life_recycling_rate": rates,
    })

    mask = rng.random(n_samples) < 0.10
    df.loc[mask, "end_of_life_recycling_rate"] = np.nan
    return df


if __name__ == "__main__":
    data_dir = Path("data")
    data_dir.mkdir(exist_ok=True)
    generate_energy_samples().to_csv(data_dir / "energy_samples.csv", index=False)
    generate_recycling_rate_samples().to_csv(data_dir / "recycling_rates.csv", index=False)
    print(f"✅ Synthetic data generated and saved to: {data_dir}")
