from copilot_board.main import main

main()
