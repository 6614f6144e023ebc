"""Lexical relationship heuristics used alongside LLM judgement."""

from engram.core.relationships.contradiction import ContradictionCheck, ContradictionDetector

__all__ = ["ContradictionCheck", "ContradictionDetector"]
