"""Command-line interface for batch-translate."""

from __future__ import annotations

import asyncio
import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from tqdm import tqdm

from .cache import CacheStore
from .config import DEFAULT_CACHE_PATH, OUTPUT_PREFIX, DocumentType, Provider, RuntimeConfig
from .errors import TranslationError
from .languages import LANGUAGES
from .orchestrator import Translator
from .providers import PROVIDERS
from .settings import TranslationSettings, load_settings, save_settings

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S"
    )
    # httpx 每个请求都会打 INFO 日志
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="batch-translate",
        description="Batch text translation through machine-translation and LLM APIs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s notes.txt                              # Free GTX API, auto -> zh
  %(prog)s movie.srt -p deepseek --doc-type subtitle
  %(prog)s readme.md -p openai -t ja -t ko        # Multi-language mode
  %(prog)s doc.txt -p deepl --chunk-size 5000
  %(prog)s --clear-cache                          # Only clear the cache
        """
    )

    # Positional arguments
    parser.add_argument("input_path", nargs="?", default=None, help="Input text file")
    parser.add_argument("output_path", nargs="?", default=None, help="Output file path")

    # Provider / languages
    parser.add_argument(
        "-p", "--provider", choices=[p.value for p in Provider], default=None,
        help="Translation provider (default: gtxFreeAPI)",
    )
    parser.add_argument("-s", "--source", dest="source_language", help="Source language code (default: auto)")
    parser.add_argument(
        "-t", "--target", dest="target_languages", action="append",
        help="Target language code; repeat for multi-language mode (default: zh)",
    )
    parser.add_argument(
        "--doc-type", dest="document_type", choices=[d.value for d in DocumentType],
        help="Enable context-aware translation for LLM providers",
    )

    # API options
    parser.add_argument("--api-key", help="API key (or set <PROVIDER>_API_KEY)")
    parser.add_argument("--url", help="Custom endpoint URL")
    parser.add_argument("--region", help="Azure Translate region")
    parser.add_argument("--model", help="LLM model name")
    parser.add_argument("--temperature", type=float)
    parser.add_argument("--sys-prompt", dest="sys_prompt", help="System prompt for LLM providers")
    parser.add_argument("--user-prompt", dest="user_prompt", help="User prompt template (${content}, ${targetLanguage}...)")

    # Performance
    parser.add_argument("--concurrency", type=int, help="Max concurrent requests (line mode)")
    parser.add_argument("--chunk-size", dest="chunk_size", type=int, help="Characters per request (chunk mode)")
    parser.add_argument("--context-window", dest="context_window", type=int, help="Lines per context batch")
    parser.add_argument("--delay", dest="delay_time", type=int, help="Delay between requests in ms")
    parser.add_argument("--retry-count", dest="retry_count", type=int, help="Retries per request")
    parser.add_argument("--retry-timeout", dest="retry_timeout", type=float, help="Per-attempt timeout in seconds")

    # Cache
    parser.add_argument("--no-cache", action="store_true", help="Do not read cached translations")
    parser.add_argument("--clear-cache", action="store_true", help="Clear the translation cache first")
    parser.add_argument("--cache-path", default=DEFAULT_CACHE_PATH, help="Cache database file")

    # Settings
    parser.add_argument("--settings", dest="settings_path", help="Import settings from a JSON file")
    parser.add_argument("--export-settings", dest="export_path", help="Export effective settings to a JSON file")

    # Misc
    parser.add_argument("--list-providers", action="store_true", help="List providers with docs and API key pages")
    parser.add_argument("--list-languages", action="store_true", help="List supported language codes")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")

    return parser.parse_args(argv)


def build_config(
    args: argparse.Namespace,
    settings: Optional[TranslationSettings] = None,
) -> Tuple[RuntimeConfig, List[str]]:
    """
    Resolve the run config and target languages.

    Command-line options win over imported settings.
    """
    if settings is None:
        config = RuntimeConfig.from_args(args)
        return config, list(args.target_languages or [config.target_language])

    if args.provider:
        settings = replace(settings, translation_method=args.provider)

    targets = args.target_languages or (
        settings.target_langs if settings.multi_language_mode and settings.target_langs
        else [settings.target_language]
    )

    config = settings.runtime_config(
        source_language=args.source_language,
        target_language=targets[0],
        api_key=args.api_key,
        url=args.url,
        region=args.region,
        model=args.model,
        temperature=args.temperature,
        batch_size=args.concurrency,
        chunk_size=args.chunk_size,
        context_window=args.context_window,
        delay_time=args.delay_time,
        retry_count=args.retry_count,
        retry_timeout=args.retry_timeout,
        sys_prompt=args.sys_prompt,
        user_prompt=args.user_prompt,
        use_cache=not args.no_cache,
    )
    return config, list(targets)


def settings_from_config(
    config: RuntimeConfig,
    targets: List[str],
    base: Optional[TranslationSettings] = None,
) -> TranslationSettings:
    """Snapshot of the effective config, merged into ``base``."""
    base = base or TranslationSettings()
    provider_config = {
        key: getattr(config, key)
        for key in base.provider_config(config.provider)
        if hasattr(config, key)
    }
    configs = dict(base.translation_configs)
    configs[config.provider.value] = provider_config

    return replace(
        base,
        translation_configs=configs,
        sys_prompt=config.effective_sys_prompt,
        user_prompt=config.effective_user_prompt,
        translation_method=config.provider.value,
        source_language=config.source_language,
        target_language=targets[0],
        target_langs=list(targets),
        multi_language_mode=len(targets) > 1,
    )


def format_provider_list() -> str:
    rows = []
    for spec in PROVIDERS.values():
        rows.append(f"{spec.provider.value:<12} {spec.label:<18} [{spec.family.value}]")
        if spec.docs:
            rows.append(f"{'':<13}docs:    {spec.docs}")
        if spec.api_key_url:
            rows.append(f"{'':<13}api key: {spec.api_key_url}")
    return "\n".join(rows)


def format_language_list() -> str:
    return "\n".join(
        f"{lang.code:<8} {lang.name} ({lang.native_label})"
        for lang in LANGUAGES
        if lang.code != "auto"
    )


def output_path_for(in_path: Path, output: Optional[str], language: str, multi: bool) -> Path:
    if output:
        out_path = Path(output).expanduser()
        return out_path.with_name(f"{out_path.stem}_{language}{out_path.suffix}") if multi else out_path
    if multi:
        return in_path.with_name(f"{OUTPUT_PREFIX}{in_path.stem}_{language}{in_path.suffix}")
    return in_path.with_name(f"{OUTPUT_PREFIX}{in_path.name}")


async def run_translation(
    translator: Translator,
    lines: List[str],
    config: RuntimeConfig,
    targets: List[str],
    document_type: Optional[str],
) -> Optional[Dict[str, List[str]]]:
    """Preflight every target language, then translate with a progress bar."""
    for language in targets:
        report = await translator.preflight(config.with_changes(target_language=language))
        for message in report.messages:
            logger.warning(message)
        if not report.ok:
            return None
        if report.config.provider != config.provider:
            # 任一语言不支持则整体切换到免费 GTX
            config = report.config.with_changes(target_language=targets[0])

    with tqdm(total=len(lines) * len(targets), desc="Translating", unit="line") as bar:
        def on_progress(current: int, total: int) -> None:
            bar.total = total
            bar.n = current
            bar.refresh()

        return await translator.translate_to_languages(
            lines, config, targets, document_type=document_type, progress=on_progress,
        )


async def main_async(args: argparse.Namespace) -> int:
    """Main async workflow."""
    if args.list_providers or args.list_languages:
        if args.list_providers:
            print(format_provider_list())
        if args.list_languages:
            print(format_language_list())
        return 0

    settings = load_settings(args.settings_path) if args.settings_path else None
    config, targets = build_config(args, settings)

    if args.export_path:
        save_settings(settings_from_config(config, targets, settings), args.export_path)

    cache = CacheStore(args.cache_path)
    try:
        if args.clear_cache:
            await cache.clear()

        if not args.input_path:
            if args.clear_cache or args.export_path:
                return 0
            logger.error("Input file is required")
            return 1

        in_path = Path(args.input_path).expanduser().resolve()
        if not in_path.is_file():
            logger.error(f"File not found: {in_path}")
            return 1

        logger.info(f"Reading: {in_path}")
        lines = in_path.read_text(encoding="utf-8-sig").splitlines()
        if not lines:
            logger.error("Input file is empty")
            return 1

        async with Translator(cache=cache) as translator:
            results = await run_translation(translator, lines, config, targets, args.document_type)
        if results is None:
            return 1

        multi = len(targets) > 1
        for language, translated in results.items():
            out_path = output_path_for(in_path, args.output_path, language, multi)
            out_path.write_text("\n".join(translated) + "\n", encoding="utf-8")
            logger.info(f"Saved {language} translation to {out_path}")

        logger.info(f"Done! {len(lines)} lines x {len(targets)} language(s)")
        return 0
    finally:
        cache.close()


def main() -> None:
    """CLI entry point."""
    args = parse_arguments()
    setup_logging(args.verbose)

    try:
        exit_code = asyncio.run(main_async(args))
        sys.exit(exit_code)
    except KeyboardInterrupt:
        print("\nInterrupted by user.")
        sys.exit(130)
    except TranslationError as e:
        logging.error(e.message)
        sys.exit(1)


if __name__ == "__main__":
    main()
