"""
Exam Grader - LLM-assisted grading for free-text exam answers.

This package builds a grading prompt from a question/answer pair, sends it
to one of several LLM vendors, and turns the model's reply into a
guaranteed-shape grading result with score, rationale and study feedback.
"""

__version__ = "0.2.0"
__author__ = "Exam Grader Team"
