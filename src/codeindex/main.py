#!/usr/bin/env python3
"""
Codebase Indexer CLI
Indexes JavaScript/TypeScript files into classified units, searches them and
resolves smart bundles.
"""

import argparse
import json
import logging
import sys
from typing import List, Optional

from .config import IndexerSettings
from .indexing.errors import EmbeddingUnavailableError, IndexingError, RuleConfigError
from .indexing.indexer import CodebaseIndexer
from .indexing.rules import RuleConfigManager, build_rule_config, read_rule_document

logger = logging.getLogger("codeindex")


def setup_logging(verbose: bool = False) -> None:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(
        '%(asctime)s | %(levelname)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    ))
    logger.handlers = [handler]
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    logger.propagate = False


def read_file_list(paths: List[str]) -> List[str]:
    """Expand ``-`` into newline-separated paths read from stdin."""
    files = []
    for path in paths:
        if path == '-':
            files.extend(line.strip() for line in sys.stdin if line.strip())
        else:
            files.append(path)
    return files


def build_indexer(args) -> CodebaseIndexer:
    settings = IndexerSettings.from_env()
    if getattr(args, 'rules', None):
        settings.rules_path = args.rules
    if getattr(args, 'backend', None):
        settings.embedding_backend = args.backend
    if getattr(args, 'no_cache', False):
        settings.cache_dir = None
    return CodebaseIndexer.from_settings(settings)


def cmd_scan(args) -> int:
    indexer = build_indexer(args)
    stats = indexer.scan_files(read_file_list(args.files))

    if args.json:
        units = [unit.to_dict() for unit in indexer.store.all_units()]
        if not args.code:
            for unit in units:
                unit.pop("code", None)
        print(json.dumps(units, indent=2))
        return 0

    print(f"📊 {stats.total_units_created} units from {stats.total_files_indexed}/{stats.total_files_scanned} files")
    for kind, count in sorted(stats.units_by_kind.items()):
        print(f"   {kind}: {count}")
    print()
    for unit in indexer.store.all_units():
        print(f"  • {unit.name} ({unit.kind}) {unit.file_path}:{unit.start_line}  [{unit.purpose}]")
    for error in stats.errors:
        print(f"❌ {error}")
    return 1 if stats.errors and not stats.total_files_indexed else 0


def cmd_search(args) -> int:
    indexer = build_indexer(args)
    indexer.scan_files(read_file_list(args.files))
    try:
        indexer.build_vector_index()
    except EmbeddingUnavailableError as e:
        print(f"❌ Semantic search unavailable: {e}")
        return 2

    hits = indexer.search(args.query, limit=args.limit, type_filter=args.type,
                          min_similarity=args.min_similarity)
    if args.json:
        print(json.dumps([{"id": h.id, "similarity": round(h.similarity, 4), **h.metadata} for h in hits], indent=2))
        return 0

    if not hits:
        print("🔍 No matches")
        return 0
    for rank, hit in enumerate(hits, 1):
        meta = hit.metadata
        print(f"{rank:>2}. {hit.similarity:.3f}  {meta.get('name')}  {meta.get('filePath')}:{meta.get('startLine')}"
              f"  [{meta.get('purpose')}]")
    return 0


def cmd_bundles(args) -> int:
    indexer = build_indexer(args)
    indexer.scan_files(read_file_list(args.files))

    if args.resolve:
        for path in indexer.resolve_bundle(args.resolve):
            print(path)
        return 0

    definitions = indexer.list_bundles()
    if args.json:
        print(json.dumps([d.__dict__ for d in definitions], indent=2))
        return 0
    for definition in definitions:
        print(f"📦 {definition.name:<40} {definition.file_count:>4} files  ({definition.source})")
    return 0


def cmd_suggest(args) -> int:
    indexer = build_indexer(args)
    for path in read_file_list(args.paths):
        print(f"{path}: {', '.join(indexer.suggest_bundles(path))}")
    return 0


def cmd_rules(args) -> int:
    if args.validate:
        try:
            document, description = read_rule_document(args.validate)
            config = build_rule_config(document, source=description)
        except RuleConfigError as e:
            print(f"❌ Invalid rule configuration: {e}")
            return 1
        print(f"✅ {description}: {len(config.purpose_rules)} purpose rules, "
              f"{len(config.bundle_rules)} bundle rules, version {config.version}")
        return 0

    settings = IndexerSettings.from_env()
    manager = RuleConfigManager(args.rules or settings.rules_path)
    config = manager.config
    if args.mapping:
        print(json.dumps(config.semantic_type_mapping, indent=2, sort_keys=True))
    else:
        print(json.dumps(config.to_dict(), indent=2))
    return 0


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='codeindex',
                                     description='Semantic indexing for JavaScript/TypeScript codebases')
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable debug logging')
    parser.add_argument('--rules', type=str, help='Path to the rule configuration JSON')
    subparsers = parser.add_subparsers(dest='command', required=True)

    scan = subparsers.add_parser('scan', help='Extract and classify units')
    scan.add_argument('files', nargs='+', help="Source files ('-' reads paths from stdin)")
    scan.add_argument('--json', action='store_true', help='Print classified units as JSON')
    scan.add_argument('--code', action='store_true', help='Include unit code in JSON output')
    scan.set_defaults(func=cmd_scan)

    search = subparsers.add_parser('search', help='Semantic search over units')
    search.add_argument('query', type=str, help='Search text')
    search.add_argument('files', nargs='+', help="Source files ('-' reads paths from stdin)")
    search.add_argument('-k', '--limit', type=int, default=10, help='Maximum number of results')
    search.add_argument('-t', '--type', type=str, help='Only units with this purpose or kind')
    search.add_argument('--min-similarity', type=float, default=0.5, help='Similarity threshold')
    search.add_argument('--backend', type=str, help='Embedding backend (hashing, openai, sentence-transformers)')
    search.add_argument('--no-cache', action='store_true', help='Do not read or write the embedding cache')
    search.add_argument('--json', action='store_true', help='Print results as JSON')
    search.set_defaults(func=cmd_search)

    bundles = subparsers.add_parser('bundles', help='List or resolve smart bundles')
    bundles.add_argument('files', nargs='+', help="Source files ('-' reads paths from stdin)")
    bundles.add_argument('-r', '--resolve', type=str, help='Print the files of one bundle label')
    bundles.add_argument('--json', action='store_true', help='Print bundle definitions as JSON')
    bundles.set_defaults(func=cmd_bundles)

    suggest = subparsers.add_parser('suggest', help='Suggest bundle labels for file paths')
    suggest.add_argument('paths', nargs='+', help="File paths ('-' reads paths from stdin)")
    suggest.set_defaults(func=cmd_suggest)

    rules = subparsers.add_parser('rules', help='Show or validate rule configuration')
    rules.add_argument('--validate', type=str, help='Validate a rule configuration file')
    rules.add_argument('--mapping', action='store_true', help='Show the semantic type to cluster mapping')
    rules.set_defaults(func=cmd_rules)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = create_parser().parse_args(argv)
    setup_logging(args.verbose)
    try:
        return args.func(args)
    except IndexingError as e:
        print(f"❌ {e}")
        return 2
    except KeyboardInterrupt:
        print("\n👋 Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
