"""
LicenseGate - License Server
Command Line Interface
"""
import click
import sys
from rich.console import Console
from rich.table import Table

from licensegate.config.settings import settings
from licensegate.context import build_context
from licensegate.core.catalog import Outcome
from licensegate.core.credentials import Claims
from licensegate.core.roles import Role

ROLE_CHOICES = [role.value for role in Role]


def _context():
    """Application context for the current invocation, built on first use"""
    state = click.get_current_context().find_object(dict)
    if "context" not in state:
        state["context"] = build_context(state["settings"])
        click.get_current_context().find_root().call_on_close(state["context"].dispose)
    return state["context"]


def _fail(message: str):
    click.echo(f"Error: {message}", err=True)
    sys.exit(1)


def _check(outcome: Outcome, success: str):
    if outcome is not Outcome.OK:
        _fail(outcome.value)
    click.echo(success)


def _parse_products(values) -> dict:
    """PRODUCT:SECONDS pairs -> {product: seconds}"""
    products = {}
    for value in values:
        product_id, sep, seconds = value.rpartition(":")
        if not sep or not product_id or not seconds.isdigit():
            raise click.BadParameter(f"expected PRODUCT:SECONDS, got {value!r}", param_hint="--product")
        products[product_id] = int(seconds)
    return products


@click.group(context_settings=dict(help_option_names=['-h', '--help']))
@click.option('--database-url', envvar='DATABASE_URL', help='Database URL (overrides settings)')
@click.pass_context
def cli(ctx, database_url):
    """LicenseGate - license server administration"""
    config = settings.model_copy(update={"DATABASE_URL": database_url}) if database_url else settings
    ctx.obj = {"settings": config}


@cli.command()
@click.option('--host', default='127.0.0.1', show_default=True, help='Bind address')
@click.option('--port', default=8000, show_default=True, type=int, help='Bind port')
def serve(host, port):
    """Run the HTTP API."""
    import uvicorn

    from licensegate.main import create_app

    uvicorn.run(create_app(context=_context()), host=host, port=port, log_level="info")


@cli.command('init-db')
def init_db():
    """Create all database tables."""
    _context().init_db()
    click.echo("Database initialized.")


@cli.command('create-user')
@click.argument('email')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.option('--role', type=click.Choice(ROLE_CHOICES), default=Role.USER.value, show_default=True)
def create_user(email, password, role):
    """Register a user account."""
    ctx = _context()
    with ctx.session() as db:
        result = ctx.catalog.register(db, email, password, Role(role))
        if not result.ok:
            _fail(result.outcome.value)
        click.echo(f"Created user {result.value.id} ({role})")


@cli.command('set-role')
@click.argument('user_id')
@click.argument('role', type=click.Choice(ROLE_CHOICES))
def set_role(user_id, role):
    """Change a user's role and revoke their existing tokens."""
    ctx = _context()
    now = ctx.clock()
    operator = Claims(subject="cli", role=Role.ADMIN, issued_at=now, expires_at=now)
    with ctx.session() as db:
        _check(ctx.catalog.set_role(db, operator, user_id, Role(role)), f"User {user_id} is now {role}")


@cli.command('create-product')
@click.argument('product_id')
def create_product(product_id):
    """Add a product to the catalog."""
    ctx = _context()
    with ctx.session() as db:
        _check(ctx.catalog.create_product(db, product_id), f"Created product {product_id}")


@cli.command()
@click.argument('product_id')
def freeze(product_id):
    """Freeze a product; its holders' time stops running."""
    ctx = _context()
    with ctx.session() as db:
        _check(ctx.catalog.freeze_product(db, product_id), f"Froze {product_id}")


@cli.command()
@click.argument('product_id')
def unfreeze(product_id):
    """Unfreeze a product, crediting holders with the frozen time."""
    ctx = _context()
    with ctx.session() as db:
        _check(ctx.catalog.unfreeze_product(db, product_id), f"Unfroze {product_id}")


@cli.command('generate-keys')
@click.argument('product_id')
@click.option('--duration', type=int, required=True, help='Seconds of access per key')
@click.option('--count', type=int, default=1, show_default=True, help='Number of keys')
def generate_keys(product_id, duration, count):
    """Generate single-use redemption keys."""
    ctx = _context()
    with ctx.session() as db:
        result = ctx.catalog.generate_redemption_keys(db, product_id, duration, count)
        if not result.ok:
            _fail(result.outcome.value)
        batch = result.value
    for key in batch.keys:
        click.echo(key)
    if not batch.complete:
        _fail(f"only generated {batch.generated} of {batch.requested} keys")


@cli.command('generate-license')
@click.option('--product', 'products', multiple=True, help='PRODUCT:SECONDS, repeatable')
def generate_license(products):
    """Create a license holding the given products."""
    product_durations = _parse_products(products)
    ctx = _context()
    with ctx.session() as db:
        result = ctx.catalog.generate_license(db, product_durations)
    if not result.ok:
        _fail(result.outcome.value)
    click.echo(result.value)


@cli.command()
def products():
    """List products."""
    ctx = _context()
    table = Table(show_header=True)
    table.add_column("Product", style="cyan")
    table.add_column("Frozen", style="yellow")
    table.add_column("Frozen at", justify="right")
    with ctx.session() as db:
        for product in ctx.catalog.list_products(db):
            table.add_row(product.id, "yes" if product.frozen else "no", str(product.frozen_at or "-"))
    Console().print(table)


@cli.command()
def licenses():
    """List licenses and their products."""
    ctx = _context()
    table = Table(show_header=True)
    table.add_column("Key", style="cyan", no_wrap=True)
    table.add_column("HWID", style="light_green")
    table.add_column("Products")
    with ctx.session() as db:
        for license in ctx.catalog.list_licenses(db):
            grants = ", ".join(f"{g.product_id} ({g.duration}s)" for g in license.products)
            table.add_row(license.key, license.hwid or "-", grants or "-")
    Console().print(table)


def main():
    """Entry point for the CLI."""
    cli(prog_name="licensegate")


if __name__ == '__main__':
    main()
