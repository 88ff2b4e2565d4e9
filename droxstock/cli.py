"""Droxstock CLI tool (droxctl)."""

import json
import os

import typer

app = typer.Typer(name="droxctl", help="Droxstock CLI")
db_app = typer.Typer(help="Database management commands")
app.add_typer(db_app, name="db")


@db_app.command("create-tables")
def db_create_tables():
    """Create all tables that don't exist yet."""
    from droxstock.db.base import Base
    from droxstock.db.session import engine
    import droxstock.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    typer.echo(f"✅ Tables ready: {', '.join(sorted(Base.metadata.tables))}")


@db_app.command("seed")
def db_seed():
    """Seed system roles, permissions, and the admin user."""
    from droxstock.db.session import SessionLocal
    from droxstock.db.seeds.seed_roles import seed_roles
    from droxstock.db.seeds.seed_admin import seed_admin

    db = SessionLocal()
    try:
        seed_roles(db)
        seed_admin(db)
    finally:
        db.close()
    typer.echo("✅ All seeds applied")


@app.command("import-csv")
def import_csv(
    file_path: str = typer.Argument(..., help="Path to a semicolon-separated catalog file"),
    update_existing: bool = typer.Option(True, help="Update records that already exist"),
    skip_duplicates: bool = typer.Option(False, help="Skip duplicates instead of failing them"),
    rollback_on_error: bool = typer.Option(False, help="Undo the whole import on the first failure"),
    batch_size: int = typer.Option(1000, min=1, max=10000, help="Rows per transaction"),
):
    """Run an import synchronously against the configured database."""
    from droxstock.db.session import SessionLocal
    from droxstock.schemas.schemas import CsvImportOptions
    from droxstock.services.csv_import_service import csv_import_service
    from droxstock.core.exceptions import InvalidInputError

    options = CsvImportOptions(
        update_existing=update_existing,
        skip_duplicates=skip_duplicates,
        rollback_on_error=rollback_on_error,
        batch_size=batch_size,
        mode="sync",
    )
    file_name = os.path.basename(file_path)
    db = SessionLocal()
    try:
        report = csv_import_service.submit(
            db, file_path, file_name, "text/csv", os.path.getsize(file_path), options
        )
    except InvalidInputError as e:
        typer.echo(f"❌ {e.message}")
        for reason in e.details.get("errors", []):
            typer.echo(f"   - {reason}")
        raise typer.Exit(code=1)
    finally:
        db.close()

    stats = report["processing_stats"]
    typer.echo(
        f"{'✅' if report['success'] else '⚠️ '} {report['message']}: "
        f"{stats['new_rows']} new, {stats['updated_rows']} updated, "
        f"{stats['skipped_rows']} skipped, {stats['failed_rows']} failed "
        f"of {stats['total_rows']} rows"
    )
    for error in report["errors"][:20]:
        typer.echo(f"   row {error['row']}: {'; '.join(error['errors'])}")
    if not report["success"]:
        raise typer.Exit(code=1)


@app.command("job-status")
def job_status(job_id: str = typer.Argument(..., help="Job id returned by an async upload")):
    """Show the stored status snapshot of an async import."""
    from droxstock.services.job_status_service import job_status_service
    from droxstock.core.exceptions import JobNotFoundError

    try:
        snapshot = job_status_service.get_status(job_id)
    except JobNotFoundError as e:
        typer.echo(f"❌ {e.message}")
        raise typer.Exit(code=1)
    typer.echo(json.dumps(snapshot, indent=2, default=str))


@app.command("issue-token")
def issue_token(email: str = typer.Argument(..., help="Email of an existing user")):
    """Print an access token for a user (local development)."""
    from droxstock.db.session import SessionLocal
    from droxstock.models import User
    from droxstock.core.security import create_access_token

    db = SessionLocal()
    try:
        user = db.query(User).filter(User.email == email).first()
        if not user:
            typer.echo(f"❌ No user with email {email}")
            raise typer.Exit(code=1)
        token = create_access_token({"sub": str(user.id), "email": user.email, "roles": user.role_names})
    finally:
        db.close()
    typer.echo(token)


@app.command("upload")
def upload_file(
    file_path: str = typer.Argument(..., help="Path to CSV file to upload"),
    token: str = typer.Option(..., envvar="DROXSTOCK_TOKEN", help="Bearer token"),
    mode: str = typer.Option("async", help="sync or async"),
    api_url: str = typer.Option("http://localhost:8000", help="API base URL"),
):
    """Upload a CSV file via the API."""
    import httpx
    with open(file_path, "rb") as f:
        resp = httpx.post(
            f"{api_url}/api/dapartos/upload-csv",
            files={"csv_file": (os.path.basename(file_path), f, "text/csv")},
            data={"mode": mode},
            headers={"Authorization": f"Bearer {token}"},
            timeout=300,
        )
    typer.echo(json.dumps(resp.json(), indent=2))


@app.command("serve")
def serve(
    host: str = typer.Option("0.0.0.0", help="Host"),
    port: int = typer.Option(8000, help="Port"),
    reload: bool = typer.Option(False, help="Auto-reload"),
):
    """Start the FastAPI server."""
    import uvicorn
    uvicorn.run("droxstock.main:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    app()
