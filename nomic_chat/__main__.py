from nomic_chat.cli import run

run()
