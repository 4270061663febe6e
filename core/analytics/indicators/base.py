"""
Base Indicator Class
"""
from abc import ABC, abstractmethod
from typing import Iterable
import pandas as pd


class BaseIndicator(ABC):
    """
    Indicators are stateless: the same frame always yields the same output,
    and too little history yields an empty/neutral result instead of an error.
    """
    required_columns: Iterable[str] = ("open", "high", "low", "close")

    def __init__(self, name: str):
        self.name = name

    def has_columns(self, df: pd.DataFrame) -> bool:
        return df is not None and all(col in df.columns for col in self.required_columns)

    @abstractmethod
    def calculate(self, df: pd.DataFrame, **kwargs):
        """
        Calculate the indicator value(s).

        Args:
            df: OHLCV DataFrame, oldest bar first
            **kwargs: Additional parameters for the calculation

        Returns:
            Series, DataFrame or a small result object depending on the indicator
        """
        pass
