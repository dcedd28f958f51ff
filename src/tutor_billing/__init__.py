'''
Tutor billing engine: lesson pricing, prepaid session accounting and
monthly payment summaries, served through a thin FastAPI app in `main.py`.
'''
