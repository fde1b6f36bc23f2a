#!/usr/bin/env python3
# CLI entry points: search/decode (+ mapver/batch placeholders)
from __future__ import annotations
import argparse, logging, os, sys
from .advanced import parse_advanced
from .backend import load_backend
from .console import ConsoleSink
from .constants import (
  ADVANCED_KEYS, COMMANDS, DEFAULT_OUTPUT, SEARCH_MODES, DECODE_MODES, REFERENCE_TYPE_KEYS,
  CLASS_QUERY_FORMAT, METHOD_QUERY_FORMAT, FALLBACK_VERSION, default_thread_count,
)
from .decoder import DexFileDecoder
from .errors import DexploreError
from .filters import build_res_filter, build_src_filter, results_to_src_filter
from .query import ReferenceTypes, build_query, parse_res_names
from .search import DexSearchEngine

log = logging.getLogger(__name__)

EXIT_INVALID = 2
EXIT_NOT_IMPLEMENTED = 3


def _invalid(msg: str) -> int:
  print(f"\n  {msg}\n", file=sys.stderr)
  return EXIT_INVALID


def check_files(files) -> None:
  for f in files:
    if not os.path.isfile(f):
      raise FileNotFoundError(f"{os.path.basename(f)} file does not exist")


# -----------------------------
# search
# -----------------------------
def validate_search(args) -> str | None:
  """Return an error message for an unusable search invocation, None if it is fine."""
  if not args.output:
    return "Invalid output directory name"
  if not args.files:
    return "Please provide input files"
  if args.mode not in SEARCH_MODES:
    return "Please enter correct search mode"
  lists = (args.classes, args.cls_names, args.sources, args.res_names, args.numbers,
           args.annot_types, args.annot_values)
  if (not any(lists) and not args.ref_type and not args.cls_regex
      and (args.mode != "c" or not args.class_advanced)
      and (args.mode != "m" or not args.method_advanced)):
    return "Please provide a search query"
  if args.classes and args.cls_names:
    return "(-cls, --classes) cannot be used together with (-cnm, --cls-names)"
  if args.ref_type:
    if any(ch not in REFERENCE_TYPE_KEYS for ch in args.ref_type):
      return "Please enter correct reference types"
    if not (args.references or args.signatures or args.ref_regex):
      return "Please provide references [-ref, --references]"
  elif args.references or args.signatures or args.ref_regex:
    return "Please provide reference types [-rt, --ref-type]"
  if args.res_names:
    if len(args.res_names) < 2:
      first = args.res_names[0]
      wanted = "resource names" if first == "R" or first.endswith(".R") else "the R class as first value"
      return f"[-res, --res-name] Please provide {wanted}"
    if any("." in r or len(r.split(":")) != 2 for r in args.res_names[1:]):
      return "[-res, --res-name] Please enter correct resource names"
  if args.print_pool and any(ch not in REFERENCE_TYPE_KEYS for ch in args.print_pool):
    return "[-pool, --print-pool] Please enter correct pool types"
  return None


def cmd_search(args, sink: ConsoleSink | None = None):
  """Search classes or methods; optionally generate sources for the hits."""
  problem = validate_search(args)
  if problem:
    return _invalid(problem)
  sink = sink or ConsoleSink()
  is_class = args.mode == "c"
  spec = build_query(
    packages=args.packages, classes=args.classes, class_names=args.cls_names,
    class_regex=args.cls_regex, ref_types=args.ref_type, references=args.references,
    ref_regex=args.ref_regex, signatures=args.signatures, sources=args.sources,
    numbers=args.numbers, annot_types=args.annot_types, annot_values=args.annot_values,
    synthetic=args.synthetic,
  )
  class_adv = parse_advanced(True, args.class_advanced)
  method_adv = parse_advanced(False, args.method_advanced)
  check_files(args.files)

  backend = load_backend(args.backend)
  engine = DexSearchEngine(backend, is_class, sink)
  engine.set_maximum(args.limit)
  engine.set_details(ReferenceTypes.parse(args.print_pool))
  engine.set_resource_names(parse_res_names(args.res_names))
  engine.init(spec, class_adv, method_adv)

  decoder = None
  if args.gen_sources:
    decoder = DexFileDecoder(backend, args.output, sink=sink)
    decoder.flat_output = True
    decoder.decode_java = True
    decoder.decode_smali = True
  try:
    for file in args.files:
      sink.write(f"File: {os.path.basename(file)}")
      found = engine.search(file)
      if found and decoder is not None:
        decoder.src_filter = results_to_src_filter(found)
        sink.write("Generating sources...")
        decoder.decode(file)
      sink.write()
  finally:
    if decoder is not None:
      decoder.close()
  return 0


# -----------------------------
# decode
# -----------------------------
def cmd_decode(args, sink: ConsoleSink | None = None):
  """Decompile java, smali and resource files."""
  if not args.files:
    return _invalid("Please provide input files")
  if not args.mode or any(ch not in DECODE_MODES for ch in args.mode):
    return _invalid("Please enter correct decode mode")
  check_files(args.files)
  sink = sink or ConsoleSink()

  decoder = DexFileDecoder(load_backend(args.backend), args.output, args.jobs, args.enable_pause, sink=sink)
  decoder.src_filter = build_src_filter(args.packages, args.classes)
  decoder.res_filter = build_res_filter(args.resources)
  decoder.disable_cache = args.disable_cache
  decoder.rename_class = not args.disable_rename
  decoder.decode_res = "r" in args.mode
  decoder.decode_java = "j" in args.mode
  decoder.decode_smali = "s" in args.mode
  try:
    for file in args.files:
      sink.write(f"File: {os.path.basename(file)}")
      report = decoder.decode(file)
      log.debug("%s: %s (%d/%d, %d failed)", report.archive, report.state.value,
                report.completed, report.total, report.failures)
      sink.write()
  finally:
    decoder.close()
  return 0


# -----------------------------
# placeholders
# -----------------------------
def not_implemented(name: str) -> int:
  print(f"'{name}' is not implemented yet.", file=sys.stderr)
  return EXIT_NOT_IMPLEMENTED


def cmd_mapver(args):
  """Map classes from one version to another."""
  return not_implemented("mapver")


def cmd_batch(args):
  """Perform multiple search at once."""
  return not_implemented("batch")


def _version() -> str:
  from importlib.metadata import version, PackageNotFoundError
  try:
    return version("dexplore-cli")
  except PackageNotFoundError:
    return FALLBACK_VERSION


def _advanced_keys_help() -> str:
  lines = ["Advanced query keys (-cdv: f s i, -mdv: f m p q r):"]
  lines += [f"  {k}: {desc}" for k, desc in ADVANCED_KEYS.items()]
  return "\n".join(lines)


def build_parser() -> argparse.ArgumentParser:
  ap = argparse.ArgumentParser(
    prog="dexplore",
    description="Explore and extract classes/methods from APK, DEX and JAR archives.",
    epilog="Examples:\n"
           "  dexplore search app.apk -rt s -ref 'Invalid token'\n"
           "  dexplore search app.apk -m m -mdv 'f:public+static,p:int+java.lang.String'\n"
           "  dexplore search app.apk -res com.app.R string:title -gen\n"
           "  dexplore decode app.apk -m js -pkg com.app.net\n",
    formatter_class=argparse.RawDescriptionHelpFormatter
  )
  ap.add_argument("--version", action="version", version=f"%(prog)s {_version()}")
  ap.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")
  ap.add_argument("--backend", default=None,
                  help="Search/decompiler backend as 'module:attr' (default: $DEXPLORE_BACKEND)")
  sub = ap.add_subparsers(dest="cmd", required=True)

  # search command
  ps = sub.add_parser("search", aliases=["s"], help=COMMANDS["search"], description=COMMANDS["search"],
                      epilog=_advanced_keys_help(), formatter_class=argparse.RawDescriptionHelpFormatter)
  ps.add_argument("files", nargs="*", help="Input files")
  ps.add_argument("-m", "--mode", default="c", help="Search mode: c: find class (default), m: find method")
  ps.add_argument("-pkg", "--packages", nargs="+", default=[], help="Search from a list of packages only. Default: all")
  ps.add_argument("-cls", "--classes", nargs="+", default=[], help="Search a list of classes only (fully qualified name)")
  ps.add_argument("-cnm", "--cls-names", nargs="+", default=[], help="Search a list of classes by names (simple short name)")
  ps.add_argument("-clx", "--cls-regex", default="", help="Filter classes with a regex (checks against the full name)")
  ps.add_argument("-rt", "--ref-type", default="", help="Reference types: a: all, s: string, t: type, f: field, m: method")
  ps.add_argument("-ref", "--references", nargs="+", default=[], help="References: string, type, field or method names")
  ps.add_argument("-rfx", "--ref-regex", default="", help="A regex that matches against the reference pools")
  ps.add_argument("-sig", "--signatures", nargs="+", default=[], help="Same as --references except that it compares with signatures")
  ps.add_argument("-src", "--sources", nargs="+", default=[], help="Source names to match against (eg: 'Cache.java')")
  ps.add_argument("-num", "--numbers", nargs="+", default=[], help="Numbers to match against (eg: 123 124.1f 121.1d 0x7f)")
  ps.add_argument("-res", "--res-name", dest="res_names", nargs="+", default=[],
                  help="Match against resource names: 'com.app.R' 'string:res_name' 'color:..'")
  ps.add_argument("-ann", "--annot-type", dest="annot_types", nargs="+", default=[],
                  help="Match based on contained annotations (eg: 'java.lang.Deprecated')")
  ps.add_argument("-anv", "--annot-value", dest="annot_values", nargs="+", default=[],
                  help="Match based on contained annotation values (values of elements)")
  ps.add_argument("-syn", "--synthetic", action="store_true", help="Enable synthetic items. Default: disabled")
  ps.add_argument("-l", "--limit", type=int, default=-1, help="Limit maximum results. Default: -1 (no limit)")
  ps.add_argument("-pool", "--print-pool", default="", help="Print ReferencePool: a: all, s: string, t: type, f: field, m: method")
  ps.add_argument("-gen", "--gen-sources", action="store_true", help="Generate java and smali source files from search results")
  ps.add_argument("-o", "--output", default=DEFAULT_OUTPUT, help=f"Output directory. Default: {DEFAULT_OUTPUT}")
  ps.add_argument("-cdv", "--class-advanced", default="", help=CLASS_QUERY_FORMAT)
  ps.add_argument("-mdv", "--method-advanced", default="", help=METHOD_QUERY_FORMAT)
  ps.set_defaults(func=cmd_search)

  # decode command
  pd = sub.add_parser("decode", aliases=["d"], help=COMMANDS["decode"], description=COMMANDS["decode"])
  pd.add_argument("files", nargs="*", help="Input files")
  pd.add_argument("-m", "--mode", default="j", help="Decode mode: j: java (default), s: smali, r: resources")
  pd.add_argument("-cls", "--classes", nargs="+", default=[], help="Decompile a list of classes. Default: all")
  pd.add_argument("-pkg", "--packages", nargs="+", default=[], help="Decompile a list of packages. Default: all")
  pd.add_argument("-res", "--resources", nargs="+", default=[], help="Resource types: color, values, drawable etc. Default: all")
  pd.add_argument("-job", "--jobs", type=int, default=default_thread_count(),
                  help="The number of threads to use. Default: [core-size]")
  pd.add_argument("-dren", "--disable-rename", action="store_true", help="Disable class names renaming. Default: enabled")
  pd.add_argument("-dmem", "--disable-cache", action="store_true", help="Disable in-memory cache. Default: enabled")
  pd.add_argument("-eps", "--enable-pause", action="store_true", help="Pause capability (with ENTER key). Default: disabled")
  pd.add_argument("-o", "--output", default=DEFAULT_OUTPUT, help=f"Output directory. Default: {DEFAULT_OUTPUT}")
  pd.set_defaults(func=cmd_decode)

  # placeholders
  pm = sub.add_parser("mapver", help=COMMANDS["mapver"], description=COMMANDS["mapver"])
  pm.add_argument("-s", "--source", default="", help="Source version (file) to map from")
  pm.add_argument("-c", "--classes", nargs="+", default=[], help="List of classes to map")
  pm.add_argument("-t", "--target", nargs="+", default=[], help="Target version (files) to map into")
  pm.set_defaults(func=cmd_mapver)

  pb = sub.add_parser("batch", help=COMMANDS["batch"], description=COMMANDS["batch"])
  pb.add_argument("files", nargs="*", help="Input files")
  pb.add_argument("-f", "--file", default="", help="Read queries from file: [query per line]")
  pb.add_argument("-q", "--queries", nargs="+", default=[], help="Multiple queries: separated by semicolon [;]")
  pb.set_defaults(func=cmd_batch)
  return ap


def main(argv=None) -> int:
  """Main CLI entry point."""
  args = build_parser().parse_args(argv)
  logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")
  if args.verbose:
    logging.getLogger("dexplore").setLevel(logging.DEBUG)

  try:
    return args.func(args) or 0
  except KeyboardInterrupt:
    return 130
  except DexploreError as e:
    print(f"\nError: {e}\n", file=sys.stderr)
    return 1
  except Exception as e:
    log.debug("unexpected failure", exc_info=True)
    print(f"Error: {e}", file=sys.stderr)
    return 1

if __name__ == "__main__":
  sys.exit(main())
