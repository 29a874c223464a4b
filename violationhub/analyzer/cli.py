"""
Analyzer
--------
Runs on each cluster: gathers the Gatekeeper violations, groups them and
uploads the resulting report into blob storage.

    violationhub-analyzer collect-once <config.yaml>   print the raw report
    violationhub-analyzer analyze-once <config.yaml>   print the grouped report
    violationhub-analyzer run <config.yaml>            group and upload periodically
"""
import argparse
import logging
import sys
import time
from typing import List, Optional

from azure.core.exceptions import AzureError

from violationhub.collection.gatherer import gather_report
from violationhub.collection.policy_source import PolicySource, YAMLPolicySource
from violationhub.config import AnalyzerConfiguration, ConfigurationError, debug_enabled, load_configuration
from violationhub.grouping.group_builder import GroupBuilder
from violationhub.models.report import Report
from violationhub.runtime.graceful_exit import graceful_execution_context, install_signal_handlers
from violationhub.storage.object_source import AzureBlobObjectSource, ObjectSource

logger = logging.getLogger("violationhub.analyzer")


def build_policy_source(cfg: AnalyzerConfiguration) -> PolicySource:
    if not cfg.policy_source.directory:
        raise ConfigurationError(["missing required configuration value: policy_source.directory"])
    return YAMLPolicySource(cfg.policy_source.directory)


def build_object_source(cfg: AnalyzerConfiguration) -> ObjectSource:
    errors = cfg.validate_storage()
    if errors:
        raise ConfigurationError(errors)
    return AzureBlobObjectSource(
        connection_string=cfg.storage.resolved_connection_string(),
        container_name=cfg.storage.container_name,
    )


def analyze(cfg: AnalyzerConfiguration, source: PolicySource, builder: Optional[GroupBuilder] = None) -> Report:
    """Gathers and groups one report."""
    builder = builder or GroupBuilder(cfg.processing_engine(), cfg.merging_engine())
    report = gather_report(cfg.cluster_identity, source)
    builder.process_report(report)
    return report


def run_once(
    cfg: AnalyzerConfiguration,
    source: PolicySource,
    target: ObjectSource,
    builder: Optional[GroupBuilder] = None,
) -> Report:
    report = analyze(cfg, source, builder)
    target.upload(cfg.storage.object_name, report.to_json().encode("utf-8"))
    return report


def run_forever(cfg: AnalyzerConfiguration, source: PolicySource, target: ObjectSource) -> None:
    # rules are compiled once for the lifetime of the process
    builder = GroupBuilder(cfg.processing_engine(), cfg.merging_engine())
    while True:
        started = time.monotonic()
        try:
            run_once(cfg, source, target, builder)
        except (AzureError, OSError, ValueError) as e:
            # the next cycle retries
            logger.error(f"analysis cycle failed: {e}")
        elapsed = time.monotonic() - started
        time.sleep(max(0.0, cfg.interval_seconds - elapsed))


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="violationhub-analyzer",
        description="Collect, group and upload Gatekeeper policy violations of one cluster.",
    )
    parser.add_argument("command", choices=["collect-once", "analyze-once", "run"])
    parser.add_argument("config", help="path to the analyzer config file (YAML)")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if debug_enabled() else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    try:
        cfg = load_configuration(args.config)
        source = build_policy_source(cfg)
        if args.command == "collect-once":
            report = gather_report(cfg.cluster_identity, source)
            print(report.to_json(indent=2))
        elif args.command == "analyze-once":
            print(analyze(cfg, source).to_json(indent=2))
        else:
            target = build_object_source(cfg)
            install_signal_handlers()
            with graceful_execution_context():
                run_forever(cfg, source, target)
    except ConfigurationError as e:
        for error in e.errors:
            logger.error(error)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
