#!/usr/bin/env python3
"""CLI entry point for natural-language questions over financial transactions."""

import argparse
import asyncio
from pathlib import Path

from dotenv import load_dotenv

from finquery.config import Settings
from finquery.errors import PipelineError
from finquery.logger import setup_logging
from finquery.models import ChatMessage
from finquery.pipeline import FinancialQAPipeline
from finquery.prompts import DEFAULT_SCHEMA_DESCRIPTION

# Load environment variables from .env file
load_dotenv()


def load_schema(schema_file: Path | None) -> str:
    if schema_file is None:
        return DEFAULT_SCHEMA_DESCRIPTION
    return schema_file.read_text()


def build_settings(database_url: str | None, model: str | None) -> Settings:
    overrides = {}
    if database_url:
        overrides["database_url"] = database_url
    if model:
        overrides["llm_model"] = model
    return Settings(**overrides)


def print_costs(pipeline: FinancialQAPipeline) -> None:
    costs = getattr(pipeline.synthesizer.llm_client, "costs", None)
    if costs:
        print("\n--- Cost ---")
        for record in costs:
            print(record)


async def ask_command(
    business_id: str,
    question: str,
    settings: Settings,
    schema_file: Path | None = None,
) -> None:
    """Answer one question end to end."""
    pipeline = FinancialQAPipeline.from_settings(settings, load_schema(schema_file))
    try:
        print(f"Question: {question}\n")
        response = await pipeline.ask(business_id, question)
        print(f"Answer: {response.answer}")
        if response.sql:
            print(f"\n--- SQL ---\n{response.sql}\n({response.row_count} rows)")
        print_costs(pipeline)
    finally:
        await pipeline.close()


async def sql_command(
    business_id: str,
    question: str,
    settings: Settings,
    schema_file: Path | None = None,
) -> None:
    """Show the resolved SQL for a question without running it."""
    pipeline = FinancialQAPipeline.from_settings(settings, load_schema(schema_file))
    try:
        resolved = await pipeline.preview(business_id, question)
    except PipelineError as exc:
        print(f"Could not build a query ({exc.stage}): {exc}")
        return
    finally:
        await pipeline.close()

    print(resolved.sql)
    for name, value in resolved.params.items():
        print(f"  :{name} = <vector, {len(value)} chars>")


async def chat_command(
    business_id: str,
    settings: Settings,
    schema_file: Path | None = None,
) -> None:
    """Interactive session; history is kept in memory only."""
    pipeline = FinancialQAPipeline.from_settings(settings, load_schema(schema_file))
    history: list[ChatMessage] = []
    try:
        while True:
            question = (await asyncio.to_thread(input, "You: ")).strip()
            if not question or question.lower() in ("exit", "quit"):
                break
            response = await pipeline.ask(business_id, question, history)
            print(f"Assistant: {response.answer}\n")
            if response.ok:
                history.append(ChatMessage(role="user", content=question))
                history.append(ChatMessage(role="assistant", content=response.answer))
    except EOFError:
        pass
    finally:
        await pipeline.close()


async def main() -> None:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Ask questions about a business's transactions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    def add_common(sub: argparse.ArgumentParser) -> None:
        sub.add_argument("business_id", type=str, help="Business to scope every query to")
        sub.add_argument(
            "--database-url",
            type=str,
            default=None,
            help="SQLAlchemy async URL (default: FINQUERY_DATABASE_URL)",
        )
        sub.add_argument(
            "--model",
            type=str,
            default=None,
            help="OpenAI model to use (default: FINQUERY_LLM_MODEL or gpt-4o-mini)",
        )
        sub.add_argument(
            "--schema-file",
            type=Path,
            default=None,
            help="Text file describing the schema (default: built-in transactions schema)",
        )

    ask_parser = subparsers.add_parser("ask", help="Answer a question")
    add_common(ask_parser)
    ask_parser.add_argument("question", type=str, help="Question to answer")

    sql_parser = subparsers.add_parser("sql", help="Print the resolved SQL only")
    add_common(sql_parser)
    sql_parser.add_argument("question", type=str, help="Question to translate")

    chat_parser = subparsers.add_parser("chat", help="Interactive question session")
    add_common(chat_parser)

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return

    settings = build_settings(args.database_url, args.model)
    setup_logging(settings.log_level)

    if args.command == "ask":
        await ask_command(args.business_id, args.question, settings, args.schema_file)
    elif args.command == "sql":
        await sql_command(args.business_id, args.question, settings, args.schema_file)
    elif args.command == "chat":
        await chat_command(args.business_id, settings, args.schema_file)


def cli() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    cli()
