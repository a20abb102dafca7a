"""
Story prompts and CSV sampling.

Only a small sample of the rows is sent to the model, together with the
row count and the column headers.
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List

import pandas as pd

SAMPLE_SIZE = 3

SYSTEM_PROMPT = (
    "You are an expert data analyst and storyteller who creates engaging "
    "narratives from CSV data."
)

THEME_PROMPTS: Dict[str, str] = {
    "Professional Theme": """You are a professional business analyst. Analyze this CSV data and create a detailed analytical story. Focus on key trends, insights, and business implications.

Structure your response as follows:
1. Executive Summary (2-3 sentences)
2. Key Findings (3-4 bullet points)
3. Data Analysis (2-3 paragraphs)
4. Business Recommendations (3-4 actionable items)

CSV Data to analyze:""",
    "Playful Theme": """You are a creative storyteller. Transform this CSV data into an engaging and fun story. Use a lighthearted tone and creative metaphors while keeping it informative.

Structure your response as follows:
1. A catchy introduction (2-3 sentences)
2. Fun facts from the data (3-4 interesting discoveries)
3. The story (2-3 paragraphs with creative interpretations)
4. A memorable conclusion (2-3 sentences)

CSV Data to transform:""",
}

DEFAULT_THEME = "Professional Theme"


@dataclass(frozen=True)
class CsvSample:
    """What the model gets to see of a CSV file."""
    row_count: int
    headers: List[str]
    sample_rows: List[Dict[str, Any]]


def load_csv(path: str) -> CsvSample:
    """Read a CSV file and keep the first rows as a sample.

    Args:
        path: Path to a .csv file with a header row

    Returns:
        CsvSample of the file

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the file isn't a CSV or has no data
    """
    csv_path = Path(path)
    if csv_path.suffix.lower() != ".csv":
        raise ValueError("Please upload a valid CSV file")
    if not csv_path.exists():
        raise FileNotFoundError(f"CSV file not found: {path}")

    try:
        df = pd.read_csv(csv_path, skip_blank_lines=True)
    except pd.errors.EmptyDataError:
        raise ValueError("CSV file is empty or invalid")
    except pd.errors.ParserError as e:
        raise ValueError(f"Failed to parse CSV file: {e}")

    if df.empty or len(df.columns) == 0:
        raise ValueError("CSV file is empty or invalid")

    # NaN is not valid JSON; send missing cells as null
    head = df.head(SAMPLE_SIZE)
    sample = head.astype(object).where(head.notna(), None)
    return CsvSample(
        row_count=len(df),
        headers=[str(column) for column in df.columns],
        sample_rows=sample.to_dict(orient="records"),
    )


def build_prompt(sample: CsvSample, theme: str) -> str:
    """Compose the user prompt for a theme.

    Raises:
        ValueError: If the theme is unknown
    """
    if theme not in THEME_PROMPTS:
        raise ValueError(f"Unknown theme: {theme}. Choose one of: {list(THEME_PROMPTS)}")

    data_preview = json.dumps(sample.sample_rows, indent=2, default=str)
    return f"""{THEME_PROMPTS[theme]}

Data Structure:
- Total Records: {sample.row_count}
- Headers: {', '.join(sample.headers)}

Sample Data (first {SAMPLE_SIZE} records):
{data_preview}

Generate a comprehensive response following the structure specified above."""
