"""Main CLI interface for the Custodia forecasting engine

Provides command-line commands for:
- Forecasting next-period services and GMV
- Backtesting the ensemble on recent history
- Projecting the month end of the period in flight
- Checking engine status and configuration
"""

import json
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from custodia_forecast import __version__
from custodia_forecast.data import CsvTimeSeriesStore
from custodia_forecast.exceptions import ForecastingError
from custodia_forecast.pipeline import ForecastEngine
from custodia_forecast.schemas import PacingSnapshot
from custodia_forecast.utils.config import ConfigLoader
from custodia_forecast.utils.logging_config import get_logger, setup_logging


console = Console()
logger = get_logger(__name__)


CONFIDENCE_STYLES = {'Alta': 'green', 'Media': 'yellow', 'Baja': 'red'}


def _build_engine(csv_path: str, config_path: str = None) -> ForecastEngine:
    config = ConfigLoader(config_path) if config_path else ConfigLoader()

    options = click.get_current_context().find_root().obj or {}
    setup_logging(
        options.get('log_level') or config.get('logging.level', 'WARNING'),
        log_file=config.get('logging.log_file')
    )

    return ForecastEngine(CsvTimeSeriesStore(csv_path), config=config)


def _fail(message: str, error: Exception):
    console.print(f"\n[bold red]✗ {message}:[/bold red] {escape(str(error))}")
    logger.exception(message)
    raise click.Abort()


csv_option = click.option(
    '--csv',
    'csv_path',
    type=click.Path(exists=True),
    required=True,
    help='CSV with period_index, period_label, service_count, gmv'
)
config_option = click.option(
    '--config',
    '-c',
    type=click.Path(exists=True),
    default=None,
    help='Path to configuration file'
)
lookback_option = click.option(
    '--lookback',
    '-l',
    type=int,
    default=None,
    help='Number of trailing periods to use'
)


@click.group()
@click.version_option(version=__version__, prog_name='Custodia Forecasting Engine')
@click.option(
    '--log-level',
    type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR'], case_sensitive=False),
    default=None,
    help='Console log level (default: logging.level from config)'
)
@click.pass_context
def cli(ctx, log_level):
    """
    Custodia Forecasting Engine

    Confidence-weighted ensemble forecasts of monthly service volume and GMV:
    - Trend decomposition
    - Auto-regressive differencing
    - Residual boosting
    - Sequential state smoothing
    """
    ctx.ensure_object(dict)
    ctx.obj['log_level'] = log_level


@cli.command()
@csv_option
@config_option
@lookback_option
@click.option(
    '--output',
    '-o',
    type=click.Path(),
    default=None,
    help='Write the full forecast report as JSON'
)
def forecast(csv_path, config, lookback, output):
    """
    Forecast the next period

    Example:
        custodia-forecast forecast --csv data/monthly.csv
        custodia-forecast forecast --csv data/monthly.csv -l 12 -o reports/forecast.json
    """
    console.print(Panel.fit(
        "[bold cyan]Next-Period Ensemble Forecast[/bold cyan]",
        border_style="cyan"
    ))

    try:
        engine = _build_engine(csv_path, config)
        result = engine.forecast(lookback)

        level = result.confidence_level.value
        console.print(
            f"\n[bold]Services:[/bold] {result.final_services:,.0f} "
            f"[dim]({result.uncertainty_lower:,.0f} - {result.uncertainty_upper:,.0f})[/dim]"
        )
        console.print(f"[bold]GMV:[/bold] {result.final_gmv:,.0f}")
        console.print(
            f"[bold]Confidence:[/bold] [{CONFIDENCE_STYLES[level]}]{level}[/] "
            f"({result.overall_confidence:.1%})"
        )

        table = Table(title="Component Models", show_header=True, header_style="bold cyan")
        table.add_column("Model", style="cyan")
        table.add_column("Services", justify="right")
        table.add_column("GMV", justify="right")
        table.add_column("Confidence", justify="right")
        table.add_column("Weight", justify="right", style="green")
        table.add_column("Trend")

        for name, component in result.components.items():
            table.add_row(
                name,
                f"{component.predicted_services:,.0f}",
                f"{component.predicted_gmv:,.0f}",
                f"{component.confidence:.2f}",
                f"{result.weights[name]:.1%}",
                component.trend_direction.value
            )

        for name, reason in result.failed_models.items():
            table.add_row(name, "-", "-", "-", "[dim]excluded[/dim]", f"[dim]{escape(reason)}[/dim]")

        console.print("\n")
        console.print(table)

        diagnostics = result.diagnostics
        mape_text = f"{diagnostics.mape:.2f}%" if diagnostics.mape is not None else "n/a"
        console.print("\n[bold]Diagnostics:[/bold]")
        console.print(f"  Backtest MAPE: {mape_text}")
        console.print(f"  Data quality:  {diagnostics.data_quality.value}")
        console.print(f"  Anomalies:     {'yes' if diagnostics.anomalies_detected else 'no'}")

        alerts = engine.alerts()
        if alerts:
            console.print("\n[bold]Alerts:[/bold]")
            for alert in alerts:
                console.print(
                    f"  [yellow]⚠[/yellow] \\[{alert.severity.value}] {escape(alert.message)}"
                )

        console.print("\n[bold]Recommendations:[/bold]")
        for line in engine.recommendations(result):
            console.print(f"  • {line}")

        if output:
            output_path = Path(output)
            output_path.parent.mkdir(parents=True, exist_ok=True)

            report = result.to_dict()
            report['alerts'] = [
                {'id': a.id, 'code': a.code, 'severity': a.severity.value, 'message': a.message}
                for a in alerts
            ]
            report['recommendations'] = engine.recommendations(result)

            with open(output_path, 'w') as f:
                json.dump(report, f, indent=2)

            console.print(f"\n[bold green]✓ Report saved to:[/bold green] {output_path}")

    except ForecastingError as e:
        _fail("Forecast failed", e)
    except Exception as e:
        _fail("Error", e)


@cli.command()
@csv_option
@config_option
@lookback_option
def backtest(csv_path, config, lookback):
    """
    Walk-forward backtest of the ensemble

    Example:
        custodia-forecast backtest --csv data/monthly.csv
    """
    console.print(Panel.fit("[bold cyan]Walk-Forward Backtest[/bold cyan]", border_style="cyan"))

    try:
        engine = _build_engine(csv_path, config)
        result = engine.forecast_series(engine.fetch(lookback))
        diagnostics = result.diagnostics

        table = Table(title="Backtest Results", show_header=True, header_style="bold cyan")
        table.add_column("Period", style="cyan")
        table.add_column("Actual", justify="right")
        table.add_column("Forecast", justify="right")
        table.add_column("Error", justify="right", style="yellow")

        for row in diagnostics.backtest_results:
            error = f"{row.percentage_error:.2f}%" if row.percentage_error is not None else "n/a"
            table.add_row(row.period, f"{row.actual:,.0f}", f"{row.forecast:,.0f}", error)

        console.print("\n")
        console.print(table)

        mape_text = f"{diagnostics.mape:.2f}%" if diagnostics.mape is not None else "n/a"
        console.print(f"\n[bold]MAPE:[/bold] {mape_text} (target {engine.alert_manager.target_mape:.0f}%)")

    except ForecastingError as e:
        _fail("Backtest failed", e)
    except Exception as e:
        _fail("Error", e)


@cli.command()
@csv_option
@config_option
@lookback_option
@click.option('--services-to-date', type=int, required=True, help='Services booked so far this month')
@click.option('--gmv-to-date', type=float, required=True, help='GMV booked so far this month')
@click.option('--days-elapsed', type=int, required=True, help='Days elapsed in the current month')
@click.option('--days-in-period', type=int, default=30, help='Days in the current month')
def pace(csv_path, config, lookback, services_to_date, gmv_to_date, days_elapsed, days_in_period):
    """
    Project the month end of the period in flight

    Example:
        custodia-forecast pace --csv data/monthly.csv --services-to-date 62 \\
            --gmv-to-date 410000 --days-elapsed 15 --days-in-period 30
    """
    console.print(Panel.fit("[bold cyan]Current Period Pacing[/bold cyan]", border_style="cyan"))

    try:
        engine = _build_engine(csv_path, config)
        snapshot = PacingSnapshot(
            services_to_date=services_to_date,
            gmv_to_date=gmv_to_date,
            days_elapsed=days_elapsed,
            days_in_period=days_in_period
        )
        projection = engine.project_current_period(snapshot, lookback)

        console.print(f"\n[bold]Projected services:[/bold] {projection.projected_services:,.0f}")
        console.print(f"[bold]Projected GMV:[/bold] {projection.projected_gmv:,.0f}")
        console.print(f"[bold]Confidence:[/bold] {projection.confidence:.1%}")

        table = Table(title="Pacing Components", show_header=True, header_style="bold cyan")
        table.add_column("Component", style="cyan")
        table.add_column("Services", justify="right")
        table.add_column("Weight", justify="right", style="green")

        for name, value in projection.components.items():
            table.add_row(name, f"{value:,.0f}", f"{projection.weights[name]:.1%}")

        console.print("\n")
        console.print(table)

        if projection.change_point_detected:
            console.print("[yellow]⚠ Change point detected in recent history[/yellow]")
        if projection.divergence_alert:
            console.print("[yellow]⚠ Projection diverges from the intra-month run rate[/yellow]")

    except ForecastingError as e:
        _fail("Pacing failed", e)
    except Exception as e:
        _fail("Error", e)


@cli.command()
@csv_option
@config_option
def status(csv_path, config):
    """
    Show engine configuration and data coverage

    Example:
        custodia-forecast status --csv data/monthly.csv
    """
    console.print(Panel.fit("[bold cyan]Custodia Forecasting Engine Status[/bold cyan]", border_style="cyan"))

    try:
        engine = _build_engine(csv_path, config)
        periods = engine.store.fetch_window()

        console.print("\n[bold]Data:[/bold]")
        console.print(f"  File:    {csv_path}")
        console.print(f"  Periods: {len(periods)}")
        if periods:
            console.print(f"  Range:   {periods[0].period_label} to {periods[-1].period_label}")

        table = Table(title="Component Models", show_header=True, header_style="bold cyan")
        table.add_column("Model", style="cyan")
        table.add_column("Min Periods", justify="right")
        table.add_column("Season", justify="right")
        table.add_column("Available", justify="center")

        for model in engine.combiner.models:
            metadata = model.get_metadata()
            ready = len(periods) >= metadata['min_samples']
            table.add_row(
                metadata['model_name'],
                str(metadata['min_samples']),
                str(metadata['seasonal_period']),
                "[green]✓[/green]" if ready else "[red]✗[/red]"
            )

        console.print("\n")
        console.print(table)

        console.print("\n[bold]Configuration:[/bold]")
        console.print(f"  Config file:   {engine.config.config_path}")
        console.print(f"  Lookback:      {engine.default_lookback}")
        console.print(f"  Gap policy:    {engine.validator.gap_policy}")
        console.print(f"  Target MAPE:   {engine.alert_manager.target_mape:.1f}%")
        console.print(f"  Recalibrate after {engine.alert_manager.consecutive_breach_limit} breaches")

    except Exception as e:
        _fail("Status check failed", e)


if __name__ == '__main__':
    cli()
