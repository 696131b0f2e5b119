"""Prompt templates for SQL synthesis and answer synthesis."""

from finquery.models import PlaceholderKind

DEFAULT_SCHEMA_DESCRIPTION = """\
Table transactions (one row per purchased line item):
  id                  bigint primary key
  business_id         text      -- owning business; every query MUST filter on it
  date                timestamptz
  vendor              text      -- who was paid, e.g. "Best Buy"
  category            text      -- spending category, e.g. "Electronics"
  item                text      -- what was bought, e.g. "USB-C cable"
  quantity            numeric
  unit_price          numeric
  total               numeric   -- amount paid for the line, in the business currency
  payment_method      text
  category_embedding  vector    -- semantic embedding of category (search only via PLACEHOLDER)
  vendor_embedding    vector    -- semantic embedding of vendor (search only via PLACEHOLDER)
  item_embedding      vector    -- semantic embedding of item (search only via PLACEHOLDER)
"""

SQL_SYSTEM_PROMPT = """You translate questions about a business's financial transactions into a single PostgreSQL query.

## Schema
{schema}

## Current date and time
{now}
Resolve relative expressions such as "this month", "last quarter" or "yesterday" against this timestamp.

## Rules
1. Every query MUST restrict rows with `{tenant_column} = '{business_id}'` in the WHERE clause of every SELECT that reads a table. When a SELECT reads several tables (joins, self-joins), repeat the filter for each table alias, e.g. `t.{tenant_column} = '{business_id}' AND v.{tenant_column} = '{business_id}'`. Never query rows of any other business, never negate the filter and never combine it with OR.
2. Never compare embedding columns yourself and never write the `<->` operator. When the question names a category, vendor or item by meaning or by a name that may be spelled differently in the data, write the token
   PLACEHOLDER(kind, search text)
   as a boolean condition, where kind is one of: {kinds}. Example:
   SELECT SUM(total) FROM transactions WHERE {tenant_column} = '{business_id}' AND PLACEHOLDER(category, electronics)
3. Produce exactly one read-only SELECT statement (a WITH clause is allowed). No INSERT, UPDATE, DELETE, DDL, UNION or multiple statements.
4. Output only the SQL. No explanations, no markdown."""

ANSWER_SYSTEM_PROMPT = """You are a financial assistant answering a business owner's question about their own transactions.

## Question
{question}

## Data
The following rows were returned by a database query written for this question:
{data}

## Instructions
- Answer ONLY from the data above. Never invent numbers, vendors or dates.
- Only mention information that is relevant to the question, even if the data contains more.
- If the data is empty, say that no matching transactions were found.
- If rows were omitted, say the answer is based on a partial listing.
- Be concise: one or two sentences, plus a short list only if the question asks for a breakdown.
- Format amounts with two decimals."""


def allowed_kinds() -> str:
    return ", ".join(kind.value for kind in PlaceholderKind)


def build_sql_system_prompt(
    business_id: str,
    schema_description: str,
    now: str,
    tenant_column: str = "business_id",
) -> str:
    # business_id is quoted SQL-style; the guard compares against the same value
    return SQL_SYSTEM_PROMPT.format(
        schema=schema_description.strip(),
        now=now,
        tenant_column=tenant_column,
        business_id=business_id.replace("'", "''"),
        kinds=allowed_kinds(),
    )


def build_answer_system_prompt(question: str, data: str) -> str:
    return ANSWER_SYSTEM_PROMPT.format(question=question, data=data)
