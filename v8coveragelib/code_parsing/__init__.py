from .source_text import SourceText
from .tree_sitter_parser import BranchSpan, FunctionSpan, StaticStructure, get_parser, get_static_structure
