from pathlib import Path


def get_prompt_text(prompt_file_name: str) -> str:
    prompt_path = Path(__file__).resolve().parent / prompt_file_name
    return prompt_path.read_text(encoding="utf-8")
