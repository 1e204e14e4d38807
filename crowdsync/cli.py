"""Command-line entry point."""
import argparse
import logging
import sys
from typing import List, Optional

from tqdm import tqdm

from crowdsync.app_config import AppConfig, load_app_config
from crowdsync.client import CrowdinClient
from crowdsync.download import DownloadOptions, synchronize_download
from crowdsync.errors import ConfigurationError, CrowdsyncError
from crowdsync.events import ConsoleRenderer, draw_tree
from crowdsync.logging_config import LOGGER_NAME
from crowdsync.placeholders import PlaceholderResolver
from crowdsync.translation_mapping import list_translations
from crowdsync.upload import upload_sources, upload_translations

logger = logging.getLogger(LOGGER_NAME)


def _common_options() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("-c", "--config", default=None, help="Path to the configuration file (default: crowdin.yml)")
    common.add_argument("-v", "--verbose", action="store_true", help="Show detailed output")
    common.add_argument("--plain", action="store_true", help="Print bare paths only, for use in scripts")
    common.add_argument("--no-progress", action="store_true", help="Do not show the progress bar")
    common.add_argument("-b", "--branch", default=None, help="Branch name")
    return common


def build_parser() -> argparse.ArgumentParser:
    common = _common_options()
    ap = argparse.ArgumentParser(prog="crowdsync", description="Synchronize localization files with Crowdin")
    sub = ap.add_subparsers(dest="cmd", required=True)

    d = sub.add_parser("download", aliases=["pull"], parents=[common], help="Download translations")
    d.add_argument("-l", "--language", default=None, help="Download a single language (language id)")
    d.add_argument("--ignore-match", action="store_true",
                   help="Do not report downloaded files that match no local source")
    d.add_argument("--skip-untranslated-strings", action="store_true")
    d.add_argument("--skip-untranslated-files", action="store_true")
    d.add_argument("--export-only-approved", action="store_true")
    d.add_argument("--dryrun", action="store_true", help="List the translation paths without downloading")
    d.add_argument("--tree", action="store_true", help="With --dryrun, show the paths as a directory tree")
    d.set_defaults(handler=_download)

    u = sub.add_parser("upload", help="Upload sources or translations")
    upload_sub = u.add_subparsers(dest="upload_cmd", required=True)
    us = upload_sub.add_parser("sources", parents=[common], help="Upload source files")
    us.add_argument("--no-auto-update", action="store_true", help="Do not update files that already exist")
    us.set_defaults(handler=_upload_sources)
    ut = upload_sub.add_parser("translations", parents=[common], help="Upload translation files")
    ut.add_argument("-l", "--language", default=None, help="Upload a single language (language id)")
    ut.add_argument("--import-eq-suggestions", action="store_true")
    ut.add_argument("--auto-approve-imported", action="store_true")
    ut.set_defaults(handler=_upload_translations)

    p = sub.add_parser("push", parents=[common], help="Upload source files (same as 'upload sources')")
    p.add_argument("--no-auto-update", action="store_true", help="Do not update files that already exist")
    p.set_defaults(handler=_upload_sources)
    return ap


def _download(args, config: AppConfig, client: CrowdinClient, renderer: ConsoleRenderer) -> None:
    if args.dryrun:
        _dryrun(args, config, client)
        return
    options = DownloadOptions(
        language=args.language,
        branch=args.branch,
        ignore_match=args.ignore_match,
        verbose=args.verbose,
        skip_untranslated_strings=args.skip_untranslated_strings,
        skip_untranslated_files=args.skip_untranslated_files,
        export_only_approved=args.export_only_approved,
    )
    result = synchronize_download(config, options, client, renderer)
    if not args.plain:
        logger.info("Downloaded %d translation file(s)", result.written_count)


def _dryrun(args, config: AppConfig, client: CrowdinClient) -> None:
    snapshot = client.fetch_project_snapshot()
    language = None
    if args.language is not None:
        language = snapshot.find_language_by_id(args.language)
        if language is None:
            raise ConfigurationError(f"Language '{args.language}' does not exist in the project")
    resolver = PlaceholderResolver(snapshot.project_languages_with_in_context(), config.base_path)
    paths = list_translations(config.files, config.base_path, resolver, snapshot.language_mapping, language)
    if args.tree:
        for line in draw_tree(paths):
            tqdm.write(line)
        return
    for path in paths:
        if args.plain:
            tqdm.write(path)
        else:
            logger.info("✔️ %s", path)


def _upload_sources(args, config: AppConfig, client: CrowdinClient, renderer: ConsoleRenderer) -> None:
    uploaded = upload_sources(config, client, branch_name=args.branch,
                              auto_update=not args.no_auto_update, emit=renderer)
    if not args.plain:
        logger.info("Uploaded %d source file(s)", len(uploaded))


def _upload_translations(args, config: AppConfig, client: CrowdinClient, renderer: ConsoleRenderer) -> None:
    uploaded = upload_translations(
        config, client,
        language=args.language,
        branch_name=args.branch,
        import_eq_suggestions=args.import_eq_suggestions,
        auto_approve_imported=args.auto_approve_imported,
        emit=renderer,
    )
    if not args.plain:
        logger.info("Uploaded %d translation file(s)", len(uploaded))


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    overrides = {"logging": {"log_level": "DEBUG"}} if args.verbose else None
    try:
        config = load_app_config(args.config, overrides)
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    renderer = ConsoleRenderer(
        verbose=args.verbose,
        plain=args.plain,
        no_progress=args.no_progress,
        ignore_match=getattr(args, "ignore_match", False),
    )
    try:
        with CrowdinClient(config.api_token, config.project_id, config.base_url,
                           storage_retry_attempts=config.storage_retry_attempts) as client:
            args.handler(args, config, client, renderer)
    except CrowdsyncError as e:
        logger.error("❌ %s", e)
        return 1
    except KeyboardInterrupt:
        logger.error("❌ Interrupted")
        return 1
    finally:
        renderer.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
