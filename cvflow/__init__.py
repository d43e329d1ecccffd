"""
CV Flow Engine

Graph-based interpreter for the CV builder's conversational wizards. A flow
is a directed graph of start, message, question, condition and end nodes;
the interpreter walks it, pauses at questions and produces the variable
bindings consumed by the CV field mapper.
"""

__version__ = "1.0.0"
