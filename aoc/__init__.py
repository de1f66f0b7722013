"""AOC: a small scripting language for puzzle-solving scripts."""
