#!/usr/bin/env python3
"""
CLI for Job Cost Forecasting.

Usage:
    python cli.py forecast report 1 --period "Month 3"
    python cli.py forecast save 1 --actor pm@example.com
    python cli.py serve --port 8000

Commands:
    forecast  Cost-to-complete reports and forecast lifecycle
    serve     Start the API server
"""
import click
import logging

from jobcost import __version__
from jobcost.config import get_config
from jobcost.cli import register_commands

# Configure logging
config = get_config()
logging.basicConfig(level=config.log_level, format=config.log_format)
logger = logging.getLogger(__name__)


@click.group()
@click.version_option(version=__version__)
def cli():
    """Job Cost Forecasting CLI.

    Earned value and cost-to-complete forecasts for construction jobs
    from labor, invoice and progress report data.
    """
    pass


register_commands(cli)


@cli.command()
@click.option('--port', type=int, default=8000, help='Server port')
@click.option('--host', default='0.0.0.0', help='Server host')
@click.option('--reload', is_flag=True, help='Enable auto-reload')
def serve(port: int, host: str, reload: bool):
    """Start the API server.

    Runs the FastAPI application with uvicorn.

    Example:
        python cli.py serve --port 8000 --reload
    """
    import uvicorn

    click.echo(click.style('Job Cost Forecasting - API Server', fg='cyan', bold=True))
    click.echo(f"Starting server at http://{host}:{port}")
    click.echo("Press CTRL+C to stop\n")

    uvicorn.run(
        "jobcost.main:app",
        host=host,
        port=port,
        reload=reload
    )


if __name__ == '__main__':
    cli()
