import os
from dataclasses import dataclass
from pathlib import Path
from typing import Tuple

from dotenv import load_dotenv

load_dotenv()

PACKAGE_ROOT = Path(__file__).resolve().parent.parent

# --- BUNDLED ARTIFACTS ---
DEFAULT_FACTORS_PATH = PACKAGE_ROOT / "data" / "lca_factors.json"
DEFAULT_ENERGY_MODEL_PATH = PACKAGE_ROOT / "models" / "energy_model.json"
DEFAULT_TREE_MODEL_PATH = PACKAGE_ROOT / "models" / "tree_model.json"


@dataclass(frozen=True)
class Settings:
    factors_path: Path = DEFAULT_FACTORS_PATH
    energy_model_path: Path = DEFAULT_ENERGY_MODEL_PATH
    tree_model_path: Path = DEFAULT_TREE_MODEL_PATH
    circularity_policy: str = "three-term"
    default_material: str = "aluminium"
    log_level: str = "INFO"
    cors_allow_origins: Tuple[str, ...] = ("*",)


def get_settings() -> Settings:
    """Reads settings from the environment (and a local .env file, if any)."""
    origins = os.getenv("CORS_ALLOW_ORIGINS", "*")
    return Settings(
        factors_path=Path(os.getenv("LCA_FACTORS_PATH") or DEFAULT_FACTORS_PATH),
        energy_model_path=Path(os.getenv("ENERGY_MODEL_PATH") or DEFAULT_ENERGY_MODEL_PATH),
        tree_model_path=Path(os.getenv("TREE_MODEL_PATH") or DEFAULT_TREE_MODEL_PATH),
        circularity_policy=os.getenv("CIRCULARITY_POLICY", "three-term").strip().lower(),
        default_material=os.getenv("DEFAULT_MATERIAL", "aluminium").strip().lower(),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        cors_allow_origins=tuple(o.strip() for o in origins.split(",") if o.strip()),
    )
