import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Set, Tuple, Union

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

# Column names produced by pandas.get_dummies on the training frame. The tree
# artifact refers to these exact strings, spaces included.
FEATURE_NAMES: Tuple[str, ...] = (
    "material_Aluminium", "material_Copper",
    "product_type_Automotive Components", "product_type_Beverage Can",
    "product_type_Building Construction", "product_type_Cookware",
    "product_type_Electronics (PCB)", "product_type_Industrial Cable",
    "product_type_Packaging Foil",
    "region_EU", "region_IN", "region_NA", "region_SEA",
)

MAX_TREE_DEPTH = 64


# --- LINEAR ENERGY MODEL ---

@dataclass(frozen=True)
class EnergyCoefficients:
    slope: float
    intercept: float


@dataclass(frozen=True)
class EnergyModel:
    model_name: str
    default: EnergyCoefficients
    materials: Mapping[str, EnergyCoefficients] = field(default_factory=dict)

    def coefficients_for(self, material: Optional[str] = None) -> EnergyCoefficients:
        if material:
            return self.materials.get(material.strip().lower(), self.default)
        return self.default

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "EnergyModel":
        def coeffs(d: Dict[str, Any]) -> EnergyCoefficients:
            return EnergyCoefficients(slope=float(d["slope"]), intercept=float(d["intercept"]))

        # a bare {slope, intercept, model_name} artifact has no per-material table
        default = coeffs(raw["default"] if "default" in raw else raw)
        materials = {k.strip().lower(): coeffs(v) for k, v in (raw.get("materials") or {}).items()}
        return cls(
            model_name=str(raw.get("model_name", "linear-regression")),
            default=default,
            materials=MappingProxyType(materials),
        )


def predict_energy(recycled_content_percent: float, coefficients: EnergyCoefficients) -> float:
    """Energy (kWh/kg) from recycled content in percent. Not clamped."""
    return coefficients.slope * recycled_content_percent + coefficients.intercept


# --- DECISION TREE ---

@dataclass(frozen=True)
class TreeLeaf:
    value: float


@dataclass(frozen=True)
class TreeSplit:
    """Internal node. Any of the attributes may be missing in a malformed artifact."""
    feature: Optional[str]
    threshold: Optional[float]
    left: Optional["TreeNode"]
    right: Optional["TreeNode"]


TreeNode = Union[TreeLeaf, TreeSplit]


def parse_tree_node(raw: Any, depth: int = 0) -> Optional[TreeNode]:
    """Builds the immutable node structure from the nested JSON objects."""
    if not isinstance(raw, dict):
        return None
    if depth > MAX_TREE_DEPTH:
        raise ConfigurationError(f"Decision tree is deeper than {MAX_TREE_DEPTH} levels.")

    if raw.get("value") is not None:
        return TreeLeaf(value=float(raw["value"]))

    threshold = raw.get("threshold")
    return TreeSplit(
        feature=raw.get("feature"),
        threshold=float(threshold) if threshold is not None else None,
        left=parse_tree_node(raw.get("left"), depth + 1),
        right=parse_tree_node(raw.get("right"), depth + 1),
    )


def tree_features(node: Optional[TreeNode]) -> Set[str]:
    if not isinstance(node, TreeSplit):
        return set()
    names = {node.feature} if node.feature else set()
    return names | tree_features(node.left) | tree_features(node.right)


@dataclass(frozen=True)
class DecisionTree:
    root: TreeNode
    description: str = "decision-tree"


def predict_recycling_rate(features: Mapping[str, float], root: Optional[TreeNode]) -> Optional[float]:
    """
    Walks the tree for a one-hot feature vector and returns the leaf value.

    Returns None (never raises) when the walk hits a feature the vector does
    not have, a split without a threshold or child, or runs past
    MAX_TREE_DEPTH steps.
    """
    node = root
    for _ in range(MAX_TREE_DEPTH + 1):
        if isinstance(node, TreeLeaf):
            return node.value
        if node is None or not node.feature or node.feature not in features or node.threshold is None:
            logger.warning(
                "Tree traversal stopped: feature not in input or malformed node (feature=%r).",
                getattr(node, "feature", None),
            )
            return None
        node = node.left if features[node.feature] <= node.threshold else node.right

    logger.warning("Tree traversal exceeded %d steps.", MAX_TREE_DEPTH)
    return None


def create_feature_vector(material: str, product_type: str, region: str) -> Dict[str, int]:
    """One-hot vector over FEATURE_NAMES. Unknown categories leave every entry at 0."""
    vector = {name: 0 for name in FEATURE_NAMES}
    for key in (f"material_{material}", f"product_type_{product_type}", f"region_{region}"):
        if key in vector:
            vector[key] = 1
    return vector


def _read_json(path: Path, what: str) -> Dict[str, Any]:
    try:
        with open(path, encoding="utf-8") as fh:
            data = json.load(fh)
    except FileNotFoundError:
        raise ConfigurationError(f"{what} not found: {path}")
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"{what} at {path} is not valid JSON: {e}")
    if not isinstance(data, dict):
        raise ConfigurationError(f"{what} at {path} must contain a JSON object.")
    return data


class ModelRegistry:
    """
    Holds the pre-fit imputation models (linear energy model + recycling-rate tree).

    Both are loaded once and only read afterwards.
    """

    def __init__(self, energy_model: EnergyModel, tree: DecisionTree):
        self.energy_model = energy_model
        self.tree = tree

    @classmethod
    def from_files(cls, energy_model_path: Union[str, Path], tree_model_path: Union[str, Path]) -> "ModelRegistry":
        energy_raw = _read_json(Path(energy_model_path), "Energy model")
        try:
            energy_model = EnergyModel.from_dict(energy_raw)
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid energy model coefficients in {energy_model_path}: {e!r}")
        logger.info("Loaded energy model '%s'.", energy_model.model_name)

        return cls(energy_model, load_tree(tree_model_path))

    @property
    def energy_source(self) -> str:
        return self.energy_model.model_name

    @property
    def tree_source(self) -> str:
        return self.tree.description

    def predict_energy(self, recycled_content_percent: float, material: Optional[str] = None) -> float:
        return predict_energy(recycled_content_percent, self.energy_model.coefficients_for(material))

    def predict_recycling_rate(self, material: str, product_type: str, region: str) -> Optional[float]:
        features = create_feature_vector(material, product_type, region)
        return predict_recycling_rate(features, self.tree.root)


def load_tree(path: Union[str, Path]) -> DecisionTree:
    """Loads `{description, feature_names, root}` or a bare root node."""
    raw = _read_json(Path(path), "Decision tree")
    try:
        root = parse_tree_node(raw.get("root", raw))
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid decision tree in {path}: {e!r}")
    if root is None:
        raise ConfigurationError(f"Decision tree in {path} has no root node.")

    unknown = tree_features(root) - set(FEATURE_NAMES)
    if unknown:
        # such branches make the walk return None rather than fail
        logger.warning("Decision tree uses features outside the encoder: %s", sorted(unknown))

    description = str(raw.get("description", "decision-tree"))
    logger.info("Loaded decision tree '%s'.", description)
    return DecisionTree(root=root, description=description)
