import logging
from contextlib import asynccontextmanager, contextmanager
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware

from .api_models import (
    CompareRequest,
    CompareResponse,
    ImputeRequest,
    ImputeResponse,
    InputParams,
    LcaResult,
    Recommendation,
)
from .config import Settings, get_settings
from .errors import ConfigurationError, UnknownMaterialError, ValidationError
from .factor_store import FactorStore
from .imputation import ImputationOrchestrator
from .lca_engine import LcaEngine, compare_results, generate_recommendations, get_circularity_policy
from .model_server import ModelRegistry

logger = logging.getLogger(__name__)


@contextmanager
def _domain_errors(action: str):
    """Maps backend errors onto HTTP responses."""
    try:
        yield
    except UnknownMaterialError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=422, detail={"message": str(e), "fields": e.fields})
    except ConfigurationError as e:
        logger.error("Configuration error during %s: %s", action, e)
        raise HTTPException(status_code=500, detail=f"Configuration error: {e}")
    except Exception as e:
        logger.exception("Error during %s", action)
        raise HTTPException(status_code=500, detail=f"An internal error occurred: {e}")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Artifacts load once; a failure here stops the service.
        factor_store = FactorStore.from_file(settings.factors_path)
        registry = ModelRegistry.from_files(settings.energy_model_path, settings.tree_model_path)
        engine = LcaEngine(factor_store, get_circularity_policy(settings.circularity_policy))

        app.state.engine = engine
        app.state.registry = registry
        app.state.orchestrator = ImputationOrchestrator(registry, engine, settings.default_material)
        logger.info("LCA service ready (circularity policy: %s).", settings.circularity_policy)
        yield

    app = FastAPI(
        title="CircularMetal LCA API",
        description="Life Cycle Assessment and circularity metrics for aluminium and copper, "
                    "with model-based imputation of missing project data.",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_allow_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health", tags=["Health"])
    def health_check(request: Request):
        """Health check endpoint to confirm API is running."""
        engine = getattr(request.app.state, "engine", None)
        return {
            "status": "ok",
            "factors_loaded": engine is not None and len(engine.factor_store) > 0,
            "models_loaded": getattr(request.app.state, "registry", None) is not None,
            "circularity_policy": settings.circularity_policy,
        }

    @app.post("/api/lca", response_model=LcaResult, tags=["LCA"])
    def run_lca_analysis(params: InputParams, request: Request):
        """Runs the LCA for one fully specified scenario."""
        with _domain_errors("LCA computation"):
            return request.app.state.engine.calculate_lca(params)

    @app.post("/api/impute", response_model=ImputeResponse, tags=["LCA"])
    def impute_and_compute(body: ImputeRequest, request: Request):
        """Imputes missing project fields, then runs the LCA on the completed project."""
        with _domain_errors("imputation"):
            outcome = request.app.state.orchestrator.impute(body.project)
            return {"project_imputed": outcome.project_imputed, "imputation_meta": outcome.imputation_meta}

    @app.post("/api/recommendations", response_model=List[Recommendation], tags=["LCA"])
    def recommendations(params: InputParams, request: Request):
        with _domain_errors("recommendations"):
            return generate_recommendations(params, request.app.state.engine)

    @app.post("/api/compare", response_model=CompareResponse, tags=["Compare"])
    def compare_projects(body: CompareRequest):
        """Deltas between two saved projects' outputs (B relative to A)."""
        with _domain_errors("comparison"):
            return compare_results(body.projectA.outputs, body.projectB.outputs)

    return app


app = create_app()
