"""Natural-language questions over a business's financial transactions."""
