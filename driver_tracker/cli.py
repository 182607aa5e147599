"""
Command line front end for the driver tracking client
"""

import asyncio
import json
import logging
import sys
from typing import Optional

import click
from dotenv import load_dotenv

from .auth_client import AuthClient
from .config import settings
from .exceptions import TrackerError
from .geolocation import SimulatedGeolocationProvider
from .models import Notice, NoticeLevel, User
from .token_store import FileTokenStore
from .tracker import SessionTracker

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

NOTICE_COLORS = {
    NoticeLevel.INFO: "green",
    NoticeLevel.WARNING: "yellow",
    NoticeLevel.ERROR: "red",
}


def echo_notice(notice: Notice):
    click.secho(f"[{notice.title}] {notice.message}", fg=NOTICE_COLORS[notice.level],
                err=notice.level != NoticeLevel.INFO)


def auth_client() -> AuthClient:
    return AuthClient(FileTokenStore(settings.TOKEN_PATH))


def require_user(client: AuthClient) -> User:
    user = client.restore_session()
    if user is None:
        click.secho("Not logged in. Run `driver-tracker login` first.", fg="red", err=True)
        sys.exit(1)
    return user


def build_tracker(user: User, vehicle_id: Optional[str], interval: int, speed: float) -> SessionTracker:
    return SessionTracker(
        provider=SimulatedGeolocationProvider(speed_kmh=speed),
        token_store=FileTokenStore(settings.TOKEN_PATH),
        vehicle_id=vehicle_id or settings.VEHICLE_ID or user.vehicle_id,
        interval=interval,
        notify=echo_notice,
    )


def print_stats(tracker: SessionTracker):
    stats = tracker.stats
    click.echo(
        f"Sent: {stats.total_locations_sent} | "
        f"Accuracy: {stats.avg_accuracy:.0f}m | "
        f"Distance: {stats.total_distance / 1000:.1f}km | "
        f"Session: {tracker.session_duration()}"
    )


@click.group()
@click.option('--log-level', envvar='LOG_LEVEL', default=settings.LOG_LEVEL, help='Logging level')
def cli(log_level):
    """Driver GPS tracking client"""
    logging.basicConfig(level=getattr(logging, log_level.upper(), logging.INFO),
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")


@cli.command()
@click.option('--email', prompt=True, help='Driver email')
@click.option('--password', prompt=True, hide_input=True, help='Driver password')
def login(email, password):
    """Log in and store the access token"""
    try:
        user = auth_client().login(email, password)
    except TrackerError as e:
        click.secho(f"{e.title}: {e}", fg="red", err=True)
        sys.exit(1)
    click.echo(f"Hello, {user.email}")
    click.echo(f"Vehicle: {user.vehicle_id or 'not assigned'}")


@cli.command()
def logout():
    """Forget the stored access token"""
    auth_client().logout()
    click.echo("Logged out")


@cli.command()
def whoami():
    """Show the logged in driver"""
    user = require_user(auth_client())
    click.echo(json.dumps(user.model_dump(by_alias=True), indent=2))


async def _run(tracker: SessionTracker, duration: Optional[float]):
    try:
        await tracker.request_permissions(
            prompt=lambda: click.confirm("This application needs access to your location. Grant permission?",
                                         default=True))
        await tracker.connect()
        if not tracker.is_connected:
            return 1
        if not await tracker.start():
            return 1

        click.echo("Press Ctrl+C to stop...\n")
        elapsed = 0.0
        while tracker.is_connected and (duration is None or elapsed < duration):
            await asyncio.sleep(tracker.tracking_interval)
            elapsed += tracker.tracking_interval
            print_stats(tracker)
        return 0 if tracker.is_connected else 1
    finally:
        await tracker.dispose()


@cli.command()
@click.option('--vehicle-id', default=None, help='Vehicle ID (default: the one assigned to the driver)')
@click.option('--interval', envvar='TRACKING_INTERVAL', default=settings.TRACKING_INTERVAL,
              type=click.IntRange(min=1), help='Send interval in seconds')
@click.option('--speed', envvar='SIMULATED_SPEED_KMH', default=settings.SIMULATED_SPEED_KMH,
              help='Simulated vehicle speed in km/h')
@click.option('--duration', default=None, type=float, help='Stop after this many seconds')
def run(vehicle_id, interval, speed, duration):
    """Connect and stream simulated GPS locations"""
    user = require_user(auth_client())
    tracker = build_tracker(user, vehicle_id, interval, speed)

    click.echo(f"Starting tracker for: {user.email}")
    click.echo(f"Vehicle: {tracker.vehicle_id or 'not assigned'}")
    click.echo(f"Server: {settings.BASE_URL}{settings.LOCATIONS_NAMESPACE}")
    click.echo(f"Update interval: {interval} seconds")

    try:
        code = asyncio.run(_run(tracker, duration))
    except KeyboardInterrupt:
        click.echo("\nStopping tracker...")
        code = 0
    print_stats(tracker)
    sys.exit(code)


async def _send_test(tracker: SessionTracker):
    try:
        await tracker.connect()
        if not tracker.is_connected:
            return 1
        await tracker.send_test_location()
        return 0 if len(tracker.history) else 1
    finally:
        await tracker.dispose()


@cli.command('send-test')
@click.option('--vehicle-id', default=None, help='Vehicle ID (default: the one assigned to the driver)')
def send_test(vehicle_id):
    """Send one random test location inside the test area"""
    user = require_user(auth_client())
    tracker = build_tracker(user, vehicle_id, settings.TRACKING_INTERVAL, settings.SIMULATED_SPEED_KMH)
    sys.exit(asyncio.run(_send_test(tracker)))


@cli.command()
@click.option('--host', envvar='API_HOST', default=settings.API_HOST, help='Bind address')
@click.option('--port', envvar='API_PORT', default=settings.API_PORT, type=int, help='Bind port')
@click.option('--interval', envvar='TRACKING_INTERVAL', default=settings.TRACKING_INTERVAL,
              type=click.IntRange(min=1), help='Send interval in seconds')
def serve(host, port, interval):
    """Run the local control API"""
    import uvicorn
    from .api import create_app

    user = require_user(auth_client())
    app = create_app(lambda: build_tracker(user, None, interval, settings.SIMULATED_SPEED_KMH))
    uvicorn.run(app, host=host, port=port)


def main():
    cli()


if __name__ == "__main__":
    main()
