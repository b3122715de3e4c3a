from __future__ import annotations
import hashlib
import random
from typing import Dict, List, Optional, Sequence

from models import ActivePrompt

EVALUATOR_SYSTEM_PROMPT = "You are a helpful assistant."

QUESTION_BANK: List[str] = [
    "What's your favorite book?",
    "What's your favorite movie?",
    "What's a hobby you enjoy?",
    "What's your favorite food?",
    "Where would you like to travel?",
    "What's your dream job?",
    "What's something you're proud of?",
    "What's a skill you'd like to learn?",
    "What's your favorite season and why?",
    "What's your favorite way to relax?",
    "What's something that everyone thinks is overrated?",
    "What's your unpopular opinion?",
    "What would you do with a million dollars?",
    "If you could have any superpower, what would it be?",
    "What's the most basic thing about modern culture?",
]

def question_id(index: int) -> str:
    return "0x" + hashlib.sha256(f"question{index}".encode("utf-8")).hexdigest()

def build_conversation(prompt: str, answer: str) -> List[Dict[str, str]]:
    """Conversation record in the shape the evaluator expects."""
    return [
        {"role": "system", "content": EVALUATOR_SYSTEM_PROMPT},
        {"role": "user", "content": prompt},
        {"role": "assistant", "content": answer},
    ]

class PromptSource:
    """Picks a random question from the bank for each round."""
    def __init__(self, questions: Sequence[str] = QUESTION_BANK, rng: Optional[random.Random] = None):
        if not questions:
            raise ValueError("Question bank is empty")
        self.questions = list(questions)
        self.rng = rng or random.Random()

    def next_prompt(self) -> ActivePrompt:
        idx = self.rng.randrange(len(self.questions))
        return ActivePrompt(prompt_id=question_id(idx), text=self.questions[idx])
