"""
Test configuration for Fern tests
"""

import io

import pytest
import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from parsing import create_parser
from semantics import create_analyzer
from interpreter import run_program


@pytest.fixture
def examples_dir():
  """Get the examples directory path"""
  return project_root / "examples"


@pytest.fixture
def run_source():
  """Parse, resolve and run Fern source text; returns (result, stdout text)"""
  parser = create_parser()
  analyzer = create_analyzer()

  def run(source: str, entry: str = "main"):
    program = analyzer.analyze(parser.parse_string(source))
    out = io.StringIO()
    result = run_program(program, entry, stdout=out)
    return result, out.getvalue()

  return run
