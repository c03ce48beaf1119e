"""Run the test suite and list functions of promptpatch below a coverage threshold."""
import ast
import os
import sys
import subprocess
import argparse

import coverage
from coverage.exceptions import CoverageException

SOURCES = ["patchcore", "application_state", "cli", "pattern", "promptpatch"]

def get_function_bounds(filename):
    """
    Return (qualified_name, start_line, end_line) for every function in a file.
    Methods are reported as Class.method.
    """
    try:
        with open(filename, "r", encoding="utf-8") as f:
            tree = ast.parse(f.read(), filename=filename)
    except (OSError, SyntaxError):
        return []

    bounds = []

    def visit(node, prefix):
        for child in ast.iter_child_nodes(node):
            if isinstance(child, ast.ClassDef):
                visit(child, f"{prefix}{child.name}.")
            elif isinstance(child, (ast.FunctionDef, ast.AsyncFunctionDef)):
                bounds.append((f"{prefix}{child.name}", child.lineno, child.end_lineno))
                visit(child, f"{prefix}{child.name}.")

    visit(tree, "")
    return bounds

def function_coverage(cov, filename, threshold):
    """Yield (function, percent) for functions of `filename` under `threshold`."""
    try:
        # analysis2 returns (filename, statements, excluded, missing, missing_formatted)
        _, statements, _, missing, _ = cov.analysis2(filename)
    except (CoverageException, OSError):
        return
    executable_lines = set(statements)
    covered_lines = executable_lines - set(missing)

    for func_name, start, end in get_function_bounds(filename):
        func_executable = {l for l in executable_lines if start <= l <= end}
        if not func_executable:
            continue  # Docstring-only

        percent = len(func_executable & covered_lines) / len(func_executable) * 100
        if percent < threshold:
            yield func_name, percent

def main():
    parser = argparse.ArgumentParser(description="Run pytest and report function-level coverage for promptpatch.")
    parser.add_argument("--threshold", type=int, default=100, help="Coverage threshold percentage (default 100).")
    # Remaining args go to pytest
    args, pytest_args = parser.parse_known_args()

    # Test output goes to stderr so the report is the only thing on stdout
    cmd = [sys.executable, "-m", "coverage", "run", f"--source={','.join(SOURCES)}", "-m", "pytest"] + pytest_args
    print(f"Running: {' '.join(cmd)}", file=sys.stderr)
    result = subprocess.run(cmd, check=False, stdout=sys.stderr, stderr=sys.stderr)

    cov = coverage.Coverage()
    try:
        cov.load()
    except CoverageException as e:
        print(f"Error: Could not load coverage data: {e}", file=sys.stderr)
        sys.exit(1)

    results = []
    cwd = os.getcwd()
    for filename in sorted(cov.get_data().measured_files()):
        relative_filename = os.path.relpath(filename, cwd)
        if relative_filename.startswith(("..", "tests")):
            continue
        for func_name, percent in function_coverage(cov, filename, args.threshold):
            results.append((f"{relative_filename}:{func_name}", percent))

    # Lowest coverage first
    results.sort(key=lambda x: x[1])
    for name, pct in results:
        print(f"{name}: {int(pct)}%")

    sys.exit(result.returncode)

if __name__ == "__main__":
    main()
