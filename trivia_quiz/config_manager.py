"""
Configuration manager for Trivia Quiz settings and parameters.
"""
import logging
from typing import Any, Dict, List
from urllib.parse import urlparse

from .models import QuizSettings


class ConfigManager:
    """Manages quiz configuration settings."""

    # Default configuration values
    DEFAULT_TOTAL_TIME = 90
    DEFAULT_QUESTION_AMOUNT = 10
    DEFAULT_API_URL = "https://opentdb.com/api.php"
    DEFAULT_LOW_TIME_THRESHOLD = 10
    DEFAULT_QUESTION_TYPE = "multiple"
    DEFAULT_TICK_INTERVAL = 1.0

    # Open Trivia DB question types
    QUESTION_TYPES = ("multiple", "boolean")

    # Validation limits
    MAX_TICK_INTERVAL = 5.0
    MIN_TOTAL_TIME = 10
    MAX_TOTAL_TIME = 600  # 10 minutes
    MIN_QUESTION_AMOUNT = 1
    MAX_QUESTION_AMOUNT = 50  # Open Trivia DB per-request limit

    def __init__(self):
        """Initialize ConfigManager with default settings."""
        self.logger = logging.getLogger(__name__)
        self._settings = QuizSettings()

    def get_quiz_settings(self) -> QuizSettings:
        """
        Get current quiz settings.

        Returns:
            QuizSettings object with current configuration
        """
        return QuizSettings(
            total_time=self._settings.total_time,
            question_amount=self._settings.question_amount,
            question_type=self._settings.question_type,
            api_url=self._settings.api_url,
            low_time_threshold=self._settings.low_time_threshold,
            tick_interval=self._settings.tick_interval
        )

    def set_total_time(self, seconds: int) -> Dict[str, Any]:
        """
        Set the session-wide countdown.

        Args:
            seconds: Total quiz time in seconds

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if isinstance(seconds, bool) or not isinstance(seconds, int):
            error_msg = f"Total time must be an integer, got {type(seconds).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected a number, got {type(seconds).__name__}"
            }

        if seconds < self.MIN_TOTAL_TIME:
            error_msg = f"Total time must be at least {self.MIN_TOTAL_TIME} seconds"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Timer too short: Minimum is {self.MIN_TOTAL_TIME} seconds"
            }

        if seconds > self.MAX_TOTAL_TIME:
            error_msg = f"Total time cannot exceed {self.MAX_TOTAL_TIME} seconds"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Timer too long: Maximum is {self.MAX_TOTAL_TIME} seconds ({self.MAX_TOTAL_TIME // 60} minutes)"
            }

        self._settings.total_time = seconds
        self.logger.info(f"Total time set to {seconds} seconds")
        return {
            'success': True,
            'message': f"Total time set to {seconds} seconds",
            'user_message': f"✅ Quiz timer set to {seconds} seconds"
        }

    def get_total_time(self) -> int:
        return self._settings.total_time

    def set_question_amount(self, amount: int) -> Dict[str, Any]:
        """
        Set the number of questions fetched per attempt.

        Args:
            amount: Number of questions

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if isinstance(amount, bool) or not isinstance(amount, int):
            error_msg = f"Question amount must be an integer, got {type(amount).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected a number, got {type(amount).__name__}"
            }

        if amount < self.MIN_QUESTION_AMOUNT:
            error_msg = f"Question amount must be at least {self.MIN_QUESTION_AMOUNT}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Too few questions: Minimum is {self.MIN_QUESTION_AMOUNT}"
            }

        if amount > self.MAX_QUESTION_AMOUNT:
            error_msg = f"Question amount cannot exceed {self.MAX_QUESTION_AMOUNT}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Too many questions: Maximum is {self.MAX_QUESTION_AMOUNT}"
            }

        self._settings.question_amount = amount
        self.logger.info(f"Question amount set to {amount}")
        return {
            'success': True,
            'message': f"Question amount set to {amount}",
            'user_message': f"✅ Quizzes will use {amount} questions"
        }

    def get_question_amount(self) -> int:
        return self._settings.question_amount

    def set_api_url(self, url: str) -> Dict[str, Any]:
        """
        Set the question provider endpoint.

        Args:
            url: Absolute http(s) URL

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if not isinstance(url, str) or not url.strip():
            error_msg = "API URL must be a non-empty string"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': "❌ API URL cannot be empty"
            }

        parsed = urlparse(url.strip())
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            error_msg = f"Invalid API URL: {url}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid URL: {url}"
            }

        self._settings.api_url = url.strip()
        self.logger.info(f"API URL set to {self._settings.api_url}")
        return {
            'success': True,
            'message': f"API URL set to {self._settings.api_url}",
            'user_message': f"✅ Questions will be fetched from {self._settings.api_url}"
        }

    def get_api_url(self) -> str:
        return self._settings.api_url

    def set_low_time_threshold(self, seconds: int) -> Dict[str, Any]:
        """
        Set the remaining time at which the timer is shown as running low.

        Args:
            seconds: Threshold in seconds, between 0 and the total time

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if isinstance(seconds, bool) or not isinstance(seconds, int):
            error_msg = f"Low time threshold must be an integer, got {type(seconds).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected a number, got {type(seconds).__name__}"
            }

        if seconds < 0 or seconds > self._settings.total_time:
            error_msg = f"Low time threshold must be between 0 and {self._settings.total_time} seconds"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Warning threshold must be between 0 and {self._settings.total_time} seconds"
            }

        self._settings.low_time_threshold = seconds
        self.logger.info(f"Low time threshold set to {seconds} seconds")
        return {
            'success': True,
            'message': f"Low time threshold set to {seconds} seconds",
            'user_message': f"✅ Timer warning at {seconds} seconds"
        }

    def set_question_type(self, question_type: str) -> Dict[str, Any]:
        """
        Set the Open Trivia DB question type.

        Args:
            question_type: One of QUESTION_TYPES

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if question_type not in self.QUESTION_TYPES:
            error_msg = f"Question type must be one of {', '.join(self.QUESTION_TYPES)}, got {question_type!r}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Unknown question type: {question_type}"
            }

        self._settings.question_type = question_type
        self.logger.info(f"Question type set to {question_type}")
        return {
            'success': True,
            'message': f"Question type set to {question_type}",
            'user_message': f"✅ Quizzes will use {question_type} questions"
        }

    def get_question_type(self) -> str:
        return self._settings.question_type

    def set_tick_interval(self, seconds: float) -> Dict[str, Any]:
        """
        Set the wall-clock length of one countdown second.

        Args:
            seconds: Interval between ticks, greater than 0 and at most MAX_TICK_INTERVAL

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if isinstance(seconds, bool) or not isinstance(seconds, (int, float)):
            error_msg = f"Tick interval must be a number, got {type(seconds).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected a number, got {type(seconds).__name__}"
            }

        if seconds <= 0 or seconds > self.MAX_TICK_INTERVAL:
            error_msg = f"Tick interval must be greater than 0 and at most {self.MAX_TICK_INTERVAL} seconds"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Tick interval must be between 0 and {self.MAX_TICK_INTERVAL} seconds"
            }

        self._settings.tick_interval = float(seconds)
        self.logger.info(f"Tick interval set to {seconds} seconds")
        return {
            'success': True,
            'message': f"Tick interval set to {seconds} seconds",
            'user_message': f"✅ Timer ticks every {seconds} seconds"
        }

    def get_tick_interval(self) -> float:
        return self._settings.tick_interval

    def apply_config(self, config: Dict[str, Any]) -> List[str]:
        """
        Apply the 'quiz' section of a loaded config file.

        Invalid values are logged and skipped so defaults stay in effect.

        Args:
            config: Parsed config.json contents

        Returns:
            List of error messages for skipped values
        """
        quiz_config = (config or {}).get('quiz', {})
        errors = []

        setters = (
            ('total_time', self.set_total_time),
            ('question_amount', self.set_question_amount),
            ('api_url', self.set_api_url),
            ('low_time_threshold', self.set_low_time_threshold),
            ('question_type', self.set_question_type),
            ('tick_interval', self.set_tick_interval),
        )
        for key, setter in setters:
            if key not in quiz_config:
                continue
            result = setter(quiz_config[key])
            if not result['success']:
                errors.append(result['error'])

        if errors:
            self.logger.warning(f"Configuration applied with {len(errors)} errors")
        else:
            self.logger.info("Configuration applied successfully")
        return errors

    def reset_to_defaults(self) -> None:
        """Reset all settings to their default values."""
        self._settings = QuizSettings(
            total_time=self.DEFAULT_TOTAL_TIME,
            question_amount=self.DEFAULT_QUESTION_AMOUNT,
            api_url=self.DEFAULT_API_URL,
            low_time_threshold=self.DEFAULT_LOW_TIME_THRESHOLD,
            question_type=self.DEFAULT_QUESTION_TYPE,
            tick_interval=self.DEFAULT_TICK_INTERVAL
        )
        self.logger.info("All settings reset to default values")

    def validate_settings(self) -> Dict[str, Any]:
        """
        Validate current settings and return validation results.

        Returns:
            Dictionary with validation results and any issues found
        """
        validation_result = {
            "valid": True,
            "issues": []
        }

        if not (self.MIN_TOTAL_TIME <= self._settings.total_time <= self.MAX_TOTAL_TIME):
            validation_result["valid"] = False
            validation_result["issues"].append(
                f"Invalid total time: {self._settings.total_time}"
            )

        if not (self.MIN_QUESTION_AMOUNT <= self._settings.question_amount <= self.MAX_QUESTION_AMOUNT):
            validation_result["valid"] = False
            validation_result["issues"].append(
                f"Invalid question amount: {self._settings.question_amount}"
            )

        if not (0 <= self._settings.low_time_threshold <= self._settings.total_time):
            validation_result["valid"] = False
            validation_result["issues"].append(
                f"Invalid low time threshold: {self._settings.low_time_threshold}"
            )

        if self._settings.question_type not in self.QUESTION_TYPES:
            validation_result["valid"] = False
            validation_result["issues"].append(
                f"Invalid question type: {self._settings.question_type}"
            )

        if not (0 < self._settings.tick_interval <= self.MAX_TICK_INTERVAL):
            validation_result["valid"] = False
            validation_result["issues"].append(
                f"Invalid tick interval: {self._settings.tick_interval}"
            )

        return validation_result

    def get_settings_summary(self) -> str:
        """
        Get a formatted summary of current settings.

        Returns:
            Human-readable string describing current settings
        """
        return (
            f"Quiz Settings:\n"
            f"• Questions: {self._settings.question_amount}\n"
            f"• Timer: {self._settings.total_time} seconds\n"
            f"• Warning at: {self._settings.low_time_threshold} seconds\n"
            f"• Source: {self._settings.api_url}"
        )
