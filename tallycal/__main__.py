from tallycal.main import run

run()
