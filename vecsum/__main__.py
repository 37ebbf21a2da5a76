from vecsum.main import run

run()
