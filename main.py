from __future__ import annotations

import secrets

from fastapi import Depends, FastAPI, HTTPException, Query, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from ecr import db
from ecr.api_models import ContainerStatusOut, EventOut
from ecr.comparator import installed_config_link, read_config
from ecr.host_ops import Host
from ecr.inventory import list_installed
from ecr.models import unit_name
from ecr.reconciler import SYSTEM_PATH_KEY
from ecr.settings import Settings, settings

app = FastAPI(title="Extra Container Reconciler")
security = HTTPBasic()


def get_settings() -> Settings:
    return settings


def get_host() -> Host:
    return Host.from_runner()


# --- AUTH ---
def get_current_username(
    credentials: HTTPBasicCredentials = Depends(security),
    cfg: Settings = Depends(get_settings),
) -> str:
    if not cfg.api_password:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="ECR_API_PASSWORD is not set")
    ok_user = secrets.compare_digest(credentials.username, cfg.api_user)
    ok_pass = secrets.compare_digest(credentials.password, cfg.api_password)
    if not (ok_user and ok_pass):
        raise HTTPException(status_code=401, detail="Invalid credentials", headers={"WWW-Authenticate": "Basic"})
    return credentials.username


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "healthy"}


@app.get("/containers", response_model=list[ContainerStatusOut])
def get_containers(
    username: str = Depends(get_current_username),
    cfg: Settings = Depends(get_settings),
    host: Host = Depends(get_host),
) -> list[ContainerStatusOut]:
    layout = cfg.layout()
    names = list_installed(layout)
    by_unit, _ = host.services.status([unit_name(n) for n in names])
    out: list[ContainerStatusOut] = []
    for n in names:
        try:
            system_path = read_config(installed_config_link(layout, n)).get(SYSTEM_PATH_KEY)
        except OSError:
            system_path = None
        run_status = by_unit.get(unit_name(n))
        out.append(
            ContainerStatusOut(
                name=n,
                unit=unit_name(n),
                status=run_status.value if run_status else "inactive",
                system_path=system_path,
            )
        )
    return out


@app.get("/events", response_model=list[EventOut])
def get_events(
    limit: int = Query(50, ge=1, le=1000),
    username: str = Depends(get_current_username),
) -> list[EventOut]:
    return [EventOut(**e) for e in db.latest_events(limit=limit)]
