"""Parser core: exceptions and the parse tree."""
