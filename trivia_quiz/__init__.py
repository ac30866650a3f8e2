"""
Trivia Quiz - timed multiple-choice quizzes from Open Trivia DB.
"""
