import json
import pandas as pd
from pathlib import Path
from typing import Any, Dict
import argparse

from circularmetal.backend.lca_engine import FLOW_NODES


def _unwrap(lca_data: Dict[str, Any]) -> Dict[str, Any]:
    """Accepts an LcaResult, or an /api/impute response whose project carries `results`."""
    if "summary" in lca_data:
        return {"results": lca_data, "inputs": {}, "imputation_meta": []}
    project = lca_data.get("project_imputed", lca_data)
    if "results" not in project:
        raise ValueError("JSON does not contain LCA results (expected 'summary' or 'project_imputed.results').")
    inputs = {k: v for k, v in project.items() if k not in ("results", "inputs")}
    return {"results": project["results"], "inputs": inputs, "imputation_meta": lca_data.get("imputation_meta", [])}


def flows_frame(sankey: Dict[str, Any]) -> pd.DataFrame:
    names = [n["name"] for n in sankey.get("nodes", [])] or list(FLOW_NODES)
    return pd.DataFrame(
        [{"Source": names[link["source"]], "Target": names[link["target"]], "Share": link["value"]}
         for link in sankey.get("links", [])],
        columns=["Source", "Target", "Share"],
    )


def json_to_excel(lca_data: Dict[str, Any], output_path: Path):
    """Converts the LCA JSON result into a multi-sheet Excel report."""
    data = _unwrap(lca_data)
    results = data["results"]
    with pd.ExcelWriter(output_path, engine="openpyxl") as writer:
        pd.DataFrame.from_dict(results["summary"], orient="index", columns=["Value"]).to_excel(writer, sheet_name="Summary")
        pd.DataFrame.from_dict(results["breakdown"]["co2e"], orient="index", columns=["kg CO2e per kg"]).to_excel(writer, sheet_name="CO2e Breakdown")
        pd.DataFrame.from_dict(results["breakdown"]["energy"], orient="index", columns=["MJ per kg"]).to_excel(writer, sheet_name="Energy Breakdown")
        flows_frame(results["sankey"]).to_excel(writer, sheet_name="Material Flows", index=False)
        if data["inputs"]:
            pd.json_normalize(data["inputs"]).T.rename(columns={0: "Value"}).to_excel(writer, sheet_name="Inputs & Estimates")
        if data["imputation_meta"]:
            pd.DataFrame(data["imputation_meta"]).to_excel(writer, sheet_name="Imputation", index=False)
    print(f"✅ Excel report successfully saved to {output_path}")


def main(argv=None):
    parser = argparse.ArgumentParser(description="Generate reports from LCA JSON output.")
    parser.add_argument("json_file", type=str, help="Path to the input LCA result JSON file.")
    parser.add_argument("--out-dir", type=str, default="reports_output", help="Directory for the Excel report.")
    args = parser.parse_args(argv)

    input_path = Path(args.json_file)
    if not input_path.exists():
        print(f"❌ Error: Input file not found at '{input_path}'")
        return None

    output_dir = Path(args.out_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    excel_output_path = output_dir / f"{input_path.stem}_report.xlsx"

    with open(input_path, "r", encoding="utf-8") as f:
        lca_results = json.load(f)

    json_to_excel(lca_results, excel_output_path)
    return excel_output_path


if __name__ == "__main__":
    main()
