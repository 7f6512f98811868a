#!/usr/bin/env python3
"""
Command-line interface for ArchLens.
"""

import json
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from .architecture.analyzer import ArchitecturalAnalyzer
from .architecture.models import AnalysisType
from .code_analysis.scanner import FileScanner
from .config import Config
from .learning.feedback_loop import FeedbackLoopManager
from .learning.models import FeedbackRecord, FeedbackType, ReferenceType
from .report_generator import ReportGenerator, top_issues
from .scoring.worker import create_scorer
from .storage import AnalysisStore
from .utils import logger, format_size, format_duration

console = Console()

SEVERITY_STYLES = {
    'critical': 'bold red',
    'high': 'red',
    'medium': 'yellow',
    'low': 'blue',
}


def get_store(ctx) -> AnalysisStore:
    """Get or create the store for this invocation."""
    if 'store' not in ctx.obj:
        ctx.obj['store'] = AnalysisStore(ctx.obj['config'].analysis.db_path)
    return ctx.obj['store']


def create_feedback_manager(ctx) -> FeedbackLoopManager:
    config = ctx.obj['config']
    scorer = create_scorer(
        model_path=config.analysis.model_path,
        feature_width=config.policy.feature_width,
        timeout=config.policy.scorer_timeout,
        respawn_backoff=config.policy.respawn_backoff,
    )
    return FeedbackLoopManager(get_store(ctx), scorer, config.policy)


@click.group()
@click.option('--config', '-c', type=click.Path(exists=True), help='Config file path')
@click.option('--verbose', '-v', is_flag=True, help='Verbose output')
@click.option('--quiet', '-q', is_flag=True, help='Quiet output')
@click.pass_context
def cli(ctx, config, verbose, quiet):
    """ArchLens - architectural analysis for source trees"""
    ctx.ensure_object(dict)
    ctx.obj['config'] = Config(config)
    ctx.obj['verbose'] = verbose
    ctx.obj['quiet'] = quiet

    if verbose:
        logger.setLevel('DEBUG')
    elif quiet:
        logger.setLevel('ERROR')


@cli.command()
@click.argument('path', type=click.Path(exists=True, file_okay=False))
@click.option('--type', '-t', 'analysis_type',
              type=click.Choice([t.value for t in AnalysisType]),
              default=AnalysisType.FULL.value, help='Analysis type')
@click.option('--deep', is_flag=True, help='Compute project-wide metrics as well')
@click.option('--export', 'export_report', is_flag=True, help='Write JSON and Markdown reports')
@click.option('--output-dir', '-o', type=click.Path(file_okay=False), help='Report directory')
@click.pass_context
def analyze(ctx, path, analysis_type, deep, export_report, output_dir):
    """Run an architectural analysis of PATH."""
    config = ctx.obj['config']
    analyzer = ArchitecturalAnalyzer(config, store=get_store(ctx))

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        progress.add_task(f"Running {analysis_type} analysis...", total=None)
        result = analyzer.analyze(path, analysis_type=analysis_type, deep_scan=deep)

    run = result.run
    if not result.succeeded:
        console.print(f"[red]✗[/red] Analysis #{run.run_number} failed: {run.failure_reason}")

    table = Table(title=f"Analysis #{run.run_number} ({run.analysis_type.value})")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="yellow")
    table.add_row("Health Score", f"{run.overall_health_score}/100")
    table.add_row("Components Analyzed", str(run.total_components_analyzed))
    table.add_row("Issues Found", str(run.total_issues_found))
    table.add_row("Opportunities Found", str(run.total_opportunities_found))
    table.add_row("Patterns Found", str(run.total_patterns_found))
    table.add_row("Duration", format_duration(run.start_time, run.end_time))
    console.print(table)

    issues = top_issues(result.issues)
    if issues:
        console.print("\n[bold]Top Issues[/bold]")
        for issue in issues:
            style = SEVERITY_STYLES.get(issue.severity.value, 'white')
            console.print(f"  [{style}][{issue.severity.value.upper()}][/{style}] {issue.title}")
            console.print(f"    Impact: {issue.impact_score} | Confidence: {issue.detection_confidence}%")

    opportunities = sorted(result.opportunities, key=lambda o: (o.priority, o.estimated_impact),
                           reverse=True)[:5]
    if opportunities:
        console.print("\n[bold]Top Opportunities[/bold]")
        for opp in opportunities:
            console.print(f"  • {opp.title}")
            console.print(f"    Impact: {opp.estimated_impact} | Priority: {opp.priority} | "
                          f"Complexity: {opp.implementation_complexity.value}")

    if export_report:
        generator = ReportGenerator(config.policy.refactor_max_maintainability)
        json_path, md_path = generator.export(result, output_dir or config.analysis.report_dir)
        console.print(f"\n[green]✓[/green] Report saved to {json_path}")
        console.print(f"[green]✓[/green] Summary saved to {md_path}")

    if not result.succeeded:
        sys.exit(1)


@cli.command()
@click.argument('path', type=click.Path(exists=True, file_okay=False))
@click.option('--large-threshold', type=int, help='Size in bytes above which a file is large')
@click.pass_context
def scan(ctx, path, large_threshold):
    """Scan PATH and report file statistics."""
    scanner = FileScanner(ctx.obj['config'].scanner)
    files = scanner.scan(Path(path))
    stats = scanner.get_directory_stats(files)

    table = Table(title="Scan Summary")
    table.add_column("Extension", style="cyan")
    table.add_column("Files", style="yellow")
    table.add_column("Size", style="green")
    for ext, count in sorted(stats.files_by_extension.items(), key=lambda x: x[1], reverse=True):
        table.add_row(ext or "(none)", str(count), format_size(stats.size_by_extension.get(ext, 0)))
    console.print(table)
    console.print(f"[blue]Total:[/blue] {stats.total_files} files, {format_size(stats.total_size)}")

    duplicates = scanner.find_duplicate_files(files)
    if duplicates:
        console.print(f"\n[yellow]Duplicate files ({len(duplicates)} groups):[/yellow]")
        for group in duplicates.values():
            console.print("  " + ", ".join(f.relative_path for f in group))

    large = scanner.find_large_files(files, large_threshold)
    if large:
        console.print(f"\n[yellow]Large files:[/yellow]")
        for record in large:
            console.print(f"  {record.relative_path} ({format_size(record.size)})")

    unused = scanner.find_unused_files(files)
    if unused:
        console.print(f"\n[yellow]Possibly unused files:[/yellow]")
        for record in unused:
            console.print(f"  {record.relative_path}")

    if scanner.skipped:
        console.print(f"\n[dim]{len(scanner.skipped)} files skipped[/dim]")


@cli.command()
@click.option('--limit', '-n', type=int, default=10, help='Number of runs to show')
@click.pass_context
def history(ctx, limit):
    """Show recent analysis runs."""
    runs = get_store(ctx).list_runs(limit)
    if not runs:
        console.print("[yellow]No analysis runs recorded yet[/yellow]")
        return

    table = Table(title="Analysis History")
    table.add_column("#", style="cyan")
    table.add_column("Type")
    table.add_column("Status")
    table.add_column("Health", style="yellow")
    table.add_column("Issues")
    table.add_column("Started")
    for run in runs:
        status = run.status.value
        if run.failure_reason:
            status = f"{status} ({run.failure_reason})"
        table.add_row(
            str(run.run_number),
            run.analysis_type.value,
            status,
            str(run.overall_health_score),
            str(run.total_issues_found),
            run.start_time.strftime('%Y-%m-%d %H:%M'),
        )
    console.print(table)


@cli.group()
def feedback():
    """Submit and inspect feedback on analysis findings."""
    pass


@feedback.command('submit')
@click.argument('reference_id')
@click.option('--reference-type', '-r', type=click.Choice([t.value for t in ReferenceType]),
              default=ReferenceType.ISSUE.value, help='Kind of finding the feedback is about')
@click.option('--type', '-t', 'feedback_type', type=click.Choice([t.value for t in FeedbackType]),
              required=True, help='Feedback type')
@click.option('--rating', type=click.IntRange(1, 5), required=True, help='Rating from 1 to 5')
@click.option('--corrected', help='Corrected data as a JSON object')
@click.option('--comment', default='', help='Free-form comment')
@click.option('--user', default='anonymous', help='User id')
@click.pass_context
def feedback_submit(ctx, reference_id, reference_type, feedback_type, rating, corrected, comment, user):
    """Record feedback on the finding REFERENCE_ID."""
    corrected_data = {}
    if corrected:
        try:
            corrected_data = json.loads(corrected)
        except json.JSONDecodeError as e:
            raise click.BadParameter(f"invalid JSON: {e}", param_hint='--corrected')
        if not isinstance(corrected_data, dict):
            raise click.BadParameter("must be a JSON object", param_hint='--corrected')

    record = FeedbackRecord(
        reference_id=reference_id,
        reference_type=ReferenceType(reference_type),
        feedback_type=FeedbackType(feedback_type),
        rating=rating,
        corrected_data=corrected_data,
        comments=comment,
        user_id=user,
    )

    manager = create_feedback_manager(ctx)
    try:
        manager.submit_feedback(record)
    finally:
        manager.cleanup()

    if record.stale_reference:
        console.print(f"[yellow]⚠[/yellow] No {reference_type} with id {reference_id}; "
                      f"feedback stored as stale")
    console.print(f"[green]✓[/green] Feedback {record.id} recorded")


@feedback.command('stats')
@click.pass_context
def feedback_stats(ctx):
    """Show feedback statistics."""
    manager = create_feedback_manager(ctx)
    try:
        stats = manager.get_feedback_statistics()
    finally:
        manager.cleanup()

    table = Table(title="Feedback Statistics")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="yellow")
    table.add_row("Total", str(stats['total']))
    table.add_row("Average Rating", f"{stats['average_rating']:.2f}")
    table.add_row("Processed for Training", str(stats['processed_for_training']))
    table.add_row("Stale References", str(stats['stale_references']))
    for name, count in sorted(stats['by_feedback_type'].items()):
        table.add_row(f"Type: {name}", str(count))
    for name, count in sorted(stats['by_reference_type'].items()):
        table.add_row(f"Reference: {name}", str(count))
    console.print(table)

    performance = stats['performance']
    if performance['samples']:
        console.print(
            f"\n[blue]Model accuracy:[/blue] {performance['accuracy']:.1f}% "
            f"[blue]F1:[/blue] {performance['f1_score']:.3f} "
            f"({performance['samples']} trainings)"
        )


@feedback.command('export')
@click.option('--format', '-f', 'export_format', type=click.Choice(['json', 'csv']), default='json')
@click.option('--output', '-o', type=click.Path(dir_okay=False), help='Output file')
@click.pass_context
def feedback_export(ctx, export_format, output):
    """Export feedback as encoded training data."""
    manager = create_feedback_manager(ctx)
    try:
        text = manager.export_training_data(export_format, output)
    finally:
        manager.cleanup()

    if output:
        console.print(f"[green]✓[/green] Training data exported to {output}")
    else:
        click.echo(text)


def main():
    """Main entry point."""
    try:
        cli(obj={})
    except Exception as e:
        console.print(f"[red]Error:[/red] {str(e)}")
        sys.exit(1)


if __name__ == "__main__":
    main()
