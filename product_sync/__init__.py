"""Auto product sync: scrape external product pages and keep catalog prices current."""
