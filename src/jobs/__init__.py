"""Entry points invoked by external schedulers."""
