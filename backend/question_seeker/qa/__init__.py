"""
Question/Answer Extraction Package

  - locator.py  Answer Locator (pure text matching)
  - cache.py    QAResultCache (memoization + single-flight)
  - engine.py   QAExtractionEngine (AI fallback chain)
"""
