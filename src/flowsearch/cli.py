import json
import os

import click
import uvicorn

from flowsearch.client import FlowSearchClient, FlowSearchError

DEFAULT_URL = "http://{}:{}".format(
    os.getenv("FLOWSEARCH_HOST", "127.0.0.1"), os.getenv("FLOWSEARCH_PORT", "7100")
)


@click.group()
@click.option("--url", "url", default=DEFAULT_URL, show_default=True, envvar="FLOWSEARCH_URL",
              help="Base URL of a running flowsearch service")
@click.option("--token", "token", envvar="FLOWSEARCH_TOKEN", default=None,
              help="Bearer token for upload/reload")
@click.pass_context
def main(ctx, url, token):
    """Flow-log ingestion and search service."""
    ctx.obj = FlowSearchClient(url, token=token or None)


@main.command()
def serve():
    """Run the HTTP service."""
    host = os.getenv("FLOWSEARCH_HOST", "127.0.0.1")
    port = int(os.getenv("FLOWSEARCH_PORT", "7100"))
    reload_ = os.getenv("FLOWSEARCH_RELOAD", "0") == "1"

    uvicorn.run(
        "flowsearch.search_app:app",
        host=host,
        port=port,
        reload=reload_,
        log_level=os.getenv("FLOWSEARCH_LOG_LEVEL", "info"),
    )


@main.command()
@click.argument("files", nargs=-1, required=True, type=click.Path(exists=True))
@click.pass_obj
def upload(client, files):
    """Upload flow-log files or folders and re-ingest."""
    try:
        out = client.upload(files)
    except (FlowSearchError, ValueError) as e:
        raise click.ClickException(str(e))
    click.echo(json.dumps(out, indent=2))


@main.command()
@click.argument("query", required=False, default="")
@click.option("--start", "start", type=int, required=True, help="Window start (epoch seconds)")
@click.option("--end", "end", type=int, required=True, help="Window end (epoch seconds)")
@click.pass_obj
def search(client, query, start, end):
    """Search ingested events: QUERY is "field=value" or free text."""
    try:
        out = client.search(query, start, end)
    except FlowSearchError as e:
        raise click.ClickException(str(e))
    click.echo(json.dumps(out, indent=2))
